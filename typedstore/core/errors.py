"""
Exception taxonomy for typedstore.

Validation failures are raised before any I/O. Engine failures are wrapped,
never swallowed, and keep the engine's native error on ``.error``.
"""

from typing import Any, Dict, Iterable, List, Optional


class StoreError(Exception):
    """Base class for every typedstore error."""
    pass


class DeclarationError(StoreError, ValueError):
    """Malformed store, index, shape or handler declaration (a programmer error)."""
    pass


class ShapeError(DeclarationError):
    """Selection shape is not compatible with the record schema."""
    pass


class FilterError(DeclarationError):
    """Filter criteria are not compatible with the record schema."""
    pass


class ValidationError(StoreError):
    """Input does not satisfy the record schema."""

    def __init__(self, message: str, issues: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.issues = list(issues or [])
        self.fields = {issue["field"] for issue in self.issues}


class SchemaMismatchError(ValidationError):
    """A record rejected at insert time."""
    pass


class NotConnectedError(StoreError):
    """Operation attempted on an adapter without an open connection."""
    pass


class UpgradeRequiredError(StoreError):
    """Structural change attempted outside an upgrade transaction."""
    pass


class EngineError(StoreError):
    """Failure reported by a storage engine, wrapping its native error."""

    def __init__(self, message: str, native: Optional[BaseException] = None):
        super().__init__(message)
        self.native = native


class DatabaseConnectionError(StoreError):
    """The storage engine failed to open the database."""

    def __init__(self, message: str, error: Optional[BaseException] = None):
        super().__init__(message)
        self.error = error


class MigrationError(StoreError):
    """An upgrade could not be completed."""
    pass


class MissingMigrationError(MigrationError):
    """Upgrade requested but no handler is registered for the target version."""

    def __init__(self, database: str, version: int, registered: Iterable[int] = ()):
        registered = sorted(set(registered))
        super().__init__(
            f"Database '{database}' needs an upgrade to version {version} "
            f"but no migration handler is registered for it (registered: {registered})"
        )
        self.database = database
        self.version = version
        self.registered = registered


class StoreReadError(StoreError):
    """Engine-reported failure while reading from a store."""

    def __init__(self, message: str, error: Optional[BaseException] = None):
        super().__init__(message)
        self.error = error


class StoreWriteError(StoreError):
    """Engine-reported failure while writing to a store."""

    def __init__(self, message: str, error: Optional[BaseException] = None):
        super().__init__(message)
        self.error = error
