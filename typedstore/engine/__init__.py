"""
Storage engines: versioned open/upgrade, per-collection records and indexes.
"""

from .base import Connection, StorageEngine
from .memory import MemoryEngine
from .sqlite_store import SQLiteEngine
from .types import OpenEvent, OpenFailed, Opened, UpgradeNeeded

__all__ = [
    'Connection',
    'StorageEngine',
    'MemoryEngine',
    'SQLiteEngine',
    'OpenEvent',
    'OpenFailed',
    'Opened',
    'UpgradeNeeded'
]
