"""
Vision backend lifecycle.

The image decoder depends on OpenCV, which has to be loaded before any
detection or tracking call is accepted. This module owns that readiness
state as a small state machine:

    UNINITIALIZED -> INITIALIZING -> READY
                                  -> FAILED -> INITIALIZING (retry)

Usage:
    from motiontrack.core.backend import vision_backend

    # Block until loaded
    vision_backend.initialize()

    # Or start loading in the background and poll
    vision_backend.initialize(wait=False)
    while vision_backend.state is BackendState.INITIALIZING:
        ...
"""

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Callable

logger = logging.getLogger(__name__)


class BackendState(Enum):
    """Readiness of the vision backend."""
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


class LoaderStatus(IntEnum):
    """Status codes reported by a backend loader."""
    SUCCESS = 0
    MARKET_ERROR = 2
    INSTALL_CANCELED = 3
    INCOMPATIBLE_MANAGER_VERSION = 4
    INIT_FAILED = 0xFF


def load_opencv() -> int:
    """Check that OpenCV is importable and can decode images."""
    try:
        import cv2
    except ImportError as e:
        logger.error("OpenCV import failed: %s", e)
        return LoaderStatus.INIT_FAILED

    if not hasattr(cv2, "imdecode"):
        logger.error("OpenCV build has no imdecode")
        return LoaderStatus.INIT_FAILED

    logger.info("OpenCV %s loaded", cv2.__version__)
    return LoaderStatus.SUCCESS


@dataclass
class VisionBackend:
    """
    Process-wide readiness of the decoding backend.

    All state transitions happen under a lock; waiters block on an event
    that is set whenever initialization finishes (either way).

    Attributes:
        loader: Callable that loads the backend and returns a status code
        last_status: Status code from the most recent load attempt
        last_error: Description of the most recent failure, if any
    """
    loader: Callable[[], int] = load_opencv
    last_status: int | None = None
    last_error: str | None = None

    _state: BackendState = field(default=BackendState.UNINITIALIZED, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _done: threading.Event = field(default_factory=threading.Event, repr=False)

    @property
    def state(self) -> BackendState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is BackendState.READY

    def initialize(self, wait: bool = True, timeout: float | None = None) -> bool:
        """
        Start loading the backend if it isn't loaded or loading already.

        Args:
            wait: Block until loading finishes (or ``timeout`` expires)
            timeout: Seconds to wait, None for no limit

        Returns:
            True if the backend is ready when this call returns
        """
        with self._lock:
            start = self._state in (BackendState.UNINITIALIZED, BackendState.FAILED)
            if start:
                self._state = BackendState.INITIALIZING
                self._done.clear()

        if start:
            if wait:
                self._run_loader()
            else:
                thread = threading.Thread(
                    target=self._run_loader, name="vision-backend-init", daemon=True
                )
                thread.start()

        if wait:
            self._done.wait(timeout)
        return self.is_ready

    def wait_ready(self, timeout: float | None = None) -> bool:
        """Wait for a pending initialization and report readiness."""
        if self._state is BackendState.INITIALIZING:
            self._done.wait(timeout)
        return self.is_ready

    def _run_loader(self) -> None:
        try:
            status = self.loader()
        except Exception as e:
            logger.exception("Vision backend loader raised")
            self._finish(LoaderStatus.INIT_FAILED, f"{type(e).__name__}: {e}")
            return
        self._finish(status)

    def _finish(self, status: int, error: str | None = None) -> None:
        """Record a loader result. Any status other than SUCCESS is a failure."""
        with self._lock:
            self.last_status = int(status)
            if status == LoaderStatus.SUCCESS:
                self._state = BackendState.READY
                self.last_error = None
            else:
                self._state = BackendState.FAILED
                self.last_error = error or f"Loader returned status {int(status)}"
            self._done.set()

        if self._state is BackendState.READY:
            logger.info("Vision backend ready")
        else:
            logger.warning("Vision backend failed: %s", self.last_error)

    def reset(self) -> None:
        """Forget any previous initialization."""
        with self._lock:
            self._state = BackendState.UNINITIALIZED
            self.last_status = None
            self.last_error = None
            self._done.clear()

    def status(self) -> dict:
        """Get current backend status."""
        return {
            "state": self._state.value,
            "ready": self.is_ready,
            "last_status": self.last_status,
            "last_error": self.last_error,
        }

    def __repr__(self) -> str:
        return f"VisionBackend({self._state.value})"


# Global backend instance
vision_backend = VisionBackend()


def configure_backend(loader: Callable[[], int] | None = None, reset: bool = False) -> VisionBackend:
    """
    Configure the global vision backend.

    Args:
        loader: Replace the loader used on the next initialization
        reset: Drop the current state so the next call reloads

    Returns:
        The global VisionBackend instance

    Example:
        >>> from motiontrack.core.backend import configure_backend
        >>> configure_backend(loader=lambda: 0, reset=True)
    """
    if loader is not None:
        vision_backend.loader = loader
    if reset:
        vision_backend.reset()
    return vision_backend
