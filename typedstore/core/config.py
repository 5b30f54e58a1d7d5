"""
Runtime configuration, read from the environment.
"""

import os
from pathlib import Path

# Where SQLite database files live (one file per database name)
DATA_DIR = os.getenv("TYPEDSTORE_DATA_DIR", "./data")

# Storage engine used when a Database is created without one
ENGINE = os.getenv("TYPEDSTORE_ENGINE", "sqlite")  # sqlite|memory

# Seconds SQLite waits on a locked database before failing
SQLITE_TIMEOUT_SEC = float(os.getenv("SQLITE_TIMEOUT_SEC", "5.0"))

LOG_LEVEL = os.getenv("TYPEDSTORE_LOG_LEVEL", "INFO").upper()

DEBUG = os.getenv("DEBUG", "false").lower() == "true"

VALID_ENGINES = ["sqlite", "memory"]

# Version string
VERSION = "0.1.0"


# Engines shared by every Database opened without an explicit engine
_engines = {}


def get_engine():
    """
    Get the configured storage engine implementation.

    One engine is created per engine kind and data directory, so databases of
    the same name see each other's open connections.
    """
    engine = os.getenv("TYPEDSTORE_ENGINE", ENGINE)

    if engine == "memory":
        cache_key = (engine, None)
    elif engine == "sqlite":
        cache_key = (engine, get_data_dir().resolve())
    else:
        raise ValueError(f"Unknown TYPEDSTORE_ENGINE: {engine} (expected one of {VALID_ENGINES})")

    if cache_key not in _engines:
        if engine == "memory":
            from ..engine.memory import MemoryEngine
            _engines[cache_key] = MemoryEngine()
        else:
            from ..engine.sqlite_store import SQLiteEngine
            _engines[cache_key] = SQLiteEngine(ensure_data_directory(), timeout=SQLITE_TIMEOUT_SEC)
    return _engines[cache_key]


def reset_engines():
    """Forget the shared engines; open connections stay open."""
    _engines.clear()


def get_data_dir() -> Path:
    """Get the data directory as a Path."""
    return Path(os.getenv("TYPEDSTORE_DATA_DIR", DATA_DIR))


def ensure_data_directory() -> Path:
    """Ensure the data directory exists."""
    data_dir = get_data_dir()
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir


def debug_enabled():
    """Check if debug mode is enabled."""
    return os.getenv("DEBUG", "false").lower() == "true"


def validate_config():
    """Validate configuration and return any issues."""
    issues = []

    engine = os.getenv("TYPEDSTORE_ENGINE", ENGINE)
    if engine not in VALID_ENGINES:
        issues.append(f"Invalid TYPEDSTORE_ENGINE: {engine}")

    if SQLITE_TIMEOUT_SEC <= 0:
        issues.append("SQLITE_TIMEOUT_SEC must be > 0")

    if LOG_LEVEL not in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
        issues.append(f"Invalid TYPEDSTORE_LOG_LEVEL: {LOG_LEVEL}")

    return issues
