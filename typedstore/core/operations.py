"""
Record operations against one object store over a live connection.
Every write is validated against the store schema before it reaches the engine.
"""

from typing import TYPE_CHECKING, Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel

from ..util.logging import logger
from .errors import (
    DeclarationError,
    EngineError,
    NotConnectedError,
    SchemaMismatchError,
    StoreReadError,
    StoreWriteError,
    ValidationError,
)
from .schema import normalize_field_value, safe_validate

if TYPE_CHECKING:
    from ..engine.base import Connection
    from .object_store import ObjectStore

T = TypeVar("T", bound=BaseModel)


class StoreOperations(Generic[T]):
    """CRUD adapter binding an ObjectStore declaration to a connection."""

    def __init__(self, store: "ObjectStore[T]", connection: Optional["Connection"] = None):
        self.store = store
        self.connection = connection

    @property
    def name(self) -> str:
        return self.store.name

    def _require_connection(self) -> "Connection":
        if self.connection is None or self.connection.closed:
            raise NotConnectedError(f"Store '{self.name}' is not bound to an open connection")
        return self.connection

    def insert(self, value: Any) -> Any:
        """Validate and add one record. Returns its primary key."""
        connection = self._require_connection()

        result = safe_validate(self.store.schema, value)
        if not result.success:
            logger.log_schema_validation_error(
                f"{self.name}.insert", result.issues, value if isinstance(value, dict) else None
            )
            raise SchemaMismatchError(
                f"Item does not fit the schema of store '{self.name}'; invalid fields: {', '.join(result.fields)}",
                result.issues
            )

        try:
            key = connection.add(self.name, result.value)
        except EngineError as e:
            logger.log_store_operation(self.name, "insert", "failed", {"error": str(e)})
            raise StoreWriteError(f"Could not insert item into store '{self.name}'", e.native) from e

        logger.log_store_operation(self.name, "insert", details={"key": key})
        return key

    def count(self) -> int:
        connection = self._require_connection()
        try:
            total = connection.count(self.name)
        except EngineError as e:
            logger.log_store_operation(self.name, "count", "failed", {"error": str(e)})
            raise StoreReadError(f"Could not fetch count from store '{self.name}'", e.native) from e

        logger.log_store_operation(self.name, "count", details={"count": total})
        return total

    def exists(self, key: Any) -> bool:
        """Check for a primary key without fetching the record."""
        connection = self._require_connection()
        try:
            found = connection.get_key(self.name, key)
        except EngineError as e:
            logger.log_store_operation(self.name, "exists", "failed", {"key": key, "error": str(e)})
            raise StoreReadError(f"Could not look up key {key!r} in store '{self.name}'", e.native) from e

        return found is not None

    def get(self, key: Any) -> Optional[Dict[str, Any]]:
        """Fetch one record by primary key, validated against the current schema."""
        connection = self._require_connection()
        try:
            record = connection.get(self.name, key)
        except EngineError as e:
            logger.log_store_operation(self.name, "get", "failed", {"key": key, "error": str(e)})
            raise StoreReadError(f"Could not read key {key!r} from store '{self.name}'", e.native) from e

        if record is None:
            return None
        return self._validated(record)

    def find_by_index(self, index_name: str, value: Any) -> List[Dict[str, Any]]:
        """All records whose indexed field equals value."""
        connection = self._require_connection()

        index = self.store.indexes.get(index_name)
        if index is None:
            raise DeclarationError(f"Store '{self.name}' has no index named '{index_name}'")
        lookup = normalize_field_value(self.store.schema, index.path, value)

        try:
            records = connection.get_all_by_index(self.name, index.name, lookup)
        except EngineError as e:
            logger.log_store_operation(self.name, "find_by_index", "failed", {"index": index_name, "error": str(e)})
            raise StoreReadError(f"Could not read index '{index_name}' of store '{self.name}'", e.native) from e

        logger.log_store_operation(self.name, "find_by_index", details={"index": index_name, "matches": len(records)})
        return [self._validated(record) for record in records]

    def _validated(self, record: Dict[str, Any]) -> Dict[str, Any]:
        result = safe_validate(self.store.schema, record)
        if not result.success:
            logger.log_schema_validation_error(f"{self.name}.read", result.issues)
            raise ValidationError(
                f"Stored record in '{self.name}' no longer fits its schema; invalid fields: {', '.join(result.fields)}",
                result.issues
            )
        return result.value

    def __repr__(self):
        state = "unbound" if self.connection is None else ("closed" if self.connection.closed else "open")
        return f"StoreOperations({self.name!r}, {state})"
