"""
Configuration management for motiontrack.

Provides the call-scoped detection and tracking parameters plus a
service configuration that can be loaded from JSON files and
environment variables.
"""

import json
import os
from dataclasses import dataclass, field, asdict, fields, replace
from pathlib import Path
from typing import Any

from motiontrack.core.errors import InvalidArguments


ENV_PREFIX = "MOTIONTRACK_"


@dataclass(frozen=True)
class DetectionParameters:
    """
    Shi-Tomasi corner detection parameters.

    Attributes:
        max_corners: Upper bound on the number of returned corners
        quality_level: Corners scoring below quality_level * best score are dropped
        min_distance: Minimum Euclidean distance between returned corners
        block_size: Side of the window the gradient covariance is summed over
    """
    max_corners: int = 100
    quality_level: float = 0.01
    min_distance: float = 10.0
    block_size: int = 3

    def __post_init__(self):
        if self.max_corners <= 0:
            raise InvalidArguments(f"max_corners must be positive, got {self.max_corners}")
        if not 0.0 < self.quality_level <= 1.0:
            raise InvalidArguments(f"quality_level must be in (0, 1], got {self.quality_level}")
        if self.min_distance < 0:
            raise InvalidArguments(f"min_distance must be >= 0, got {self.min_distance}")
        if self.block_size < 3 or self.block_size % 2 == 0:
            raise InvalidArguments(f"block_size must be odd and >= 3, got {self.block_size}")


@dataclass(frozen=True)
class TrackingParameters:
    """
    Pyramidal Lucas-Kanade parameters.

    Attributes:
        levels: Number of pyramid levels, including full resolution
        window_radius: Half-size of the square tracking window
        epsilon: Convergence threshold on the per-iteration update (pixels)
        max_iterations: Iteration cap per pyramid level
        min_determinant: Determinant of the window-averaged gradient matrix
            below which the system counts as singular
        motion_tolerance: Mean absolute intensity difference below which a
            singular window is treated as not moving
        max_workers: Threads used for per-point solving (1 = sequential)
    """
    levels: int = 4
    window_radius: int = 10
    epsilon: float = 0.01
    max_iterations: int = 30
    min_determinant: float = 1e-6
    motion_tolerance: float = 1e-3
    max_workers: int = 1

    def __post_init__(self):
        if self.levels < 1:
            raise InvalidArguments(f"levels must be >= 1, got {self.levels}")
        if self.window_radius < 1:
            raise InvalidArguments(f"window_radius must be >= 1, got {self.window_radius}")
        if self.epsilon <= 0:
            raise InvalidArguments(f"epsilon must be positive, got {self.epsilon}")
        if self.max_iterations < 1:
            raise InvalidArguments(f"max_iterations must be >= 1, got {self.max_iterations}")
        if self.min_determinant < 0 or self.motion_tolerance < 0:
            raise InvalidArguments("Numeric thresholds must be non-negative")
        if self.max_workers < 1:
            raise InvalidArguments(f"max_workers must be >= 1, got {self.max_workers}")

    @property
    def window_size(self) -> int:
        return 2 * self.window_radius + 1


@dataclass
class ServerSettings:
    """HTTP transport settings."""
    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "INFO"


@dataclass
class Config:
    """
    Main configuration container.

    Example:
        config = Config.load("motiontrack.json")
        tracker = PyramidalLKTracker(config.tracking)
    """
    detection: DetectionParameters = field(default_factory=DetectionParameters)
    tracking: TrackingParameters = field(default_factory=TrackingParameters)
    server: ServerSettings = field(default_factory=ServerSettings)

    @classmethod
    def load(cls, path: str | Path) -> "Config":
        """Load configuration from a JSON file."""
        return load_config(path)

    def save(self, path: str | Path) -> None:
        """Save configuration to a JSON file."""
        save_config(self, path)

    def to_dict(self) -> dict:
        """Convert configuration to a dictionary."""
        return {
            "detection": asdict(self.detection),
            "tracking": asdict(self.tracking),
            "server": asdict(self.server),
        }


def _pick(cls, data: dict) -> dict:
    """Keep only the keys that are fields of ``cls``."""
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in names}


def config_from_dict(data: dict) -> Config:
    """Build a Config from a (possibly partial) dictionary."""
    return Config(
        detection=DetectionParameters(**_pick(DetectionParameters, data.get("detection", {}))),
        tracking=TrackingParameters(**_pick(TrackingParameters, data.get("tracking", {}))),
        server=ServerSettings(**_pick(ServerSettings, data.get("server", {}))),
    )


def load_config(path: str | Path) -> Config:
    """
    Load configuration from a JSON file.

    Args:
        path: Path to the JSON configuration file

    Returns:
        Parsed Config object

    Raises:
        FileNotFoundError: If the config file doesn't exist
        json.JSONDecodeError: If the JSON is invalid
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    with open(path, "r") as f:
        data = json.load(f)

    return config_from_dict(data)


def save_config(config: Config, path: str | Path) -> None:
    """
    Save configuration to a JSON file.

    Args:
        config: Configuration object to save
        path: Output path for the JSON file
    """
    path = Path(path)
    with open(path, "w") as f:
        json.dump(config.to_dict(), f, indent=2)


def get_env_config(prefix: str = ENV_PREFIX, environ: dict | None = None) -> dict[str, Any]:
    """
    Get configuration from environment variables.

    All environment variables starting with the prefix will be included.
    Variable names are converted to lowercase with the prefix removed.

    Example:
        MOTIONTRACK_TRACKING__LEVELS=3 -> {"tracking__levels": "3"}
    """
    environ = os.environ if environ is None else environ
    config = {}
    for key, value in environ.items():
        if key.startswith(prefix):
            config_key = key[len(prefix):].lower()
            config[config_key] = value
    return config


def _coerce(value: str, current: Any) -> Any:
    """Convert an environment string to the type of the current value."""
    if isinstance(current, bool):
        return value.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(current, int):
        return int(value)
    if isinstance(current, float):
        return float(value)
    return value


def apply_env_overrides(config: Config, environ: dict | None = None) -> Config:
    """
    Return a copy of ``config`` with environment overrides applied.

    Variables are named ``MOTIONTRACK_<SECTION>__<FIELD>``, e.g.
    ``MOTIONTRACK_SERVER__PORT=9000``. Unknown names are ignored.

    Raises:
        InvalidArguments: If a value can't be converted or is out of range
    """
    sections = {
        "detection": config.detection,
        "tracking": config.tracking,
        "server": config.server,
    }
    updates: dict[str, dict[str, Any]] = {name: {} for name in sections}

    for key, value in get_env_config(environ=environ).items():
        section, _, name = key.partition("__")
        if section not in sections:
            continue
        if name not in {f.name for f in fields(sections[section])}:
            continue
        current = getattr(sections[section], name)
        try:
            updates[section][name] = _coerce(value, current)
        except ValueError as e:
            raise InvalidArguments(f"Bad value for {ENV_PREFIX}{key.upper()}: {value!r}") from e

    return Config(
        detection=replace(config.detection, **updates["detection"]),
        tracking=replace(config.tracking, **updates["tracking"]),
        server=replace(config.server, **updates["server"]),
    )
