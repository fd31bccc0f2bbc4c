"""
Shared logger utility for the rental core.
Provides a consistent logger configuration for entry points (API, demos).
Library modules just call ``logging.getLogger(__name__)``.
"""

import logging


def get_logger(name: str | None = None, level: str | int = logging.INFO) -> logging.Logger:
    """
    Returns a logger with the specified name, configured with a standard format.
    If no name is provided, returns the root logger.
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            fmt="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(level.upper() if isinstance(level, str) else level)
    return logger
