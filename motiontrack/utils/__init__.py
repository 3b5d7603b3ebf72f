"""
Utilities module - Shared helpers.
"""

from motiontrack.utils.log import setup_logging

__all__ = [
    "setup_logging",
]
