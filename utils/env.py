"""Environment helper utilities.

Loads a `.env` file from the project root so that settings such as
``PLATFORM_COMMISSION_PERCENT`` or ``REDIS_URL`` defined there become
available via ``os.getenv`` before ``MarketplaceConfig.from_env`` reads them.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

__all__ = ["load_project_dotenv", "env_value"]


def _find_project_root(start: Path | None = None) -> Path:
    """Traverse upwards until we find a directory that contains `pyproject.toml`."""
    current = start or Path(__file__).resolve().parent
    for _ in range(10):  # safety break
        if (current / "pyproject.toml").exists():
            return current
        if current.parent == current:
            break
        current = current.parent
    return Path(__file__).resolve().parent


def load_project_dotenv(start: Path | None = None) -> bool:
    """Load the project-level `.env` if present. Real environment variables win."""
    dotenv_path = _find_project_root(start) / ".env"
    if dotenv_path.exists():
        return load_dotenv(dotenv_path=dotenv_path, override=False)
    return False


def env_value(name: str) -> str | None:
    """Environment variable with surrounding whitespace stripped; blank counts as unset."""
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    return raw.strip()
