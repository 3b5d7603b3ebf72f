"""
Logging setup.
"""

import logging

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level: str | int = "INFO", log_path: str | None = None) -> None:
    """
    Configure root logging for the CLI and the HTTP server.

    Args:
        level: Level name ("DEBUG", "INFO", ...) or number
        log_path: Also write to this file if given
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_path:
        handlers.append(logging.FileHandler(log_path))

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)
