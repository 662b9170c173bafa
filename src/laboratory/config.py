"""Filesystem locations and tunables."""
import os
from pathlib import Path

import appdirs

APP_NAME = "laboratory"
CACHE_FILE = "Cache.toml"
DEFAULT_LOCK_TIMEOUT = 30.0


def data_dir() -> Path:
    """Root directory for laboratory state."""
    override = os.environ.get("LABORATORY_HOME")
    if override:
        return Path(override)
    return Path(appdirs.user_data_dir(APP_NAME, appauthor=False))


def cache_path() -> Path:
    override = os.environ.get("LABORATORY_CACHE")
    if override:
        return Path(override)
    return data_dir() / CACHE_FILE


def expanded_dir() -> Path:
    """Default parent directory for expanded labs."""
    return data_dir() / "expanded"


def volumes_dir() -> Path:
    """Directory holding symlink volumes on hosts without drive letters."""
    return data_dir() / "volumes"


def lock_timeout() -> float:
    value = os.environ.get("LABORATORY_LOCK_TIMEOUT")
    if not value:
        return DEFAULT_LOCK_TIMEOUT
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"LABORATORY_LOCK_TIMEOUT must be a number, got {value!r}") from None
