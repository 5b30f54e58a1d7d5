"""
typedstore - schema-validated object stores over a versioned local database.
"""

from .core.config import VERSION as __version__
from .core.database import ConnectionState, Database
from .core.errors import (
    DatabaseConnectionError,
    DeclarationError,
    EngineError,
    FilterError,
    MigrationError,
    MissingMigrationError,
    NotConnectedError,
    SchemaMismatchError,
    ShapeError,
    StoreError,
    StoreReadError,
    StoreWriteError,
    UpgradeRequiredError,
    ValidationError,
)
from .core.migration import MigrationHandler, MigrationRegistry
from .core.object_store import Index, ObjectStore, create_object_store
from .core.operations import StoreOperations
from .core.projection import Include, Nested, compile_selection, compute_select_from, extract_shape, project
from .core.query import Filter, Query
from .core.schema import ValidationResult, safe_validate
from .engine import MemoryEngine, SQLiteEngine

__all__ = [
    'Database',
    'ConnectionState',
    'ObjectStore',
    'Index',
    'create_object_store',
    'StoreOperations',
    'Query',
    'Filter',
    'MigrationHandler',
    'MigrationRegistry',
    'Include',
    'Nested',
    'compile_selection',
    'compute_select_from',
    'extract_shape',
    'project',
    'safe_validate',
    'ValidationResult',
    'MemoryEngine',
    'SQLiteEngine',
    'StoreError',
    'DeclarationError',
    'ShapeError',
    'FilterError',
    'ValidationError',
    'SchemaMismatchError',
    'NotConnectedError',
    'UpgradeRequiredError',
    'EngineError',
    'DatabaseConnectionError',
    'MigrationError',
    'MissingMigrationError',
    'StoreReadError',
    'StoreWriteError'
]
