"""
Object store declarations.

An ObjectStore names a collection, its record schema, its primary key field
and its secondary indexes. It is an immutable value: add_index returns a new
store, so earlier declarations held elsewhere stay as they were.
"""

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Generic, Mapping, Type, TypeVar

from pydantic import BaseModel

from ..util.logging import logger
from .errors import DeclarationError
from .operations import StoreOperations
from .query import Query
from .schema import field_annotation, is_valid_key_annotation, require_model

T = TypeVar("T", bound=BaseModel)


@dataclass(frozen=True)
class Index:
    """A secondary lookup over one field of the record."""

    name: str
    path: str
    unique: bool = False


@dataclass(frozen=True)
class ObjectStore(Generic[T]):
    name: str
    schema: Type[T]
    key_path: str
    indexes: Mapping[str, Index] = field(default_factory=dict)

    def __post_init__(self):
        if not isinstance(self.name, str) or not self.name:
            raise DeclarationError(f"Object store name must be a non-empty string, got {self.name!r}")

        require_model(self.schema)

        annotation = field_annotation(self.schema, self.key_path)
        if annotation is None:
            raise DeclarationError(
                f"Key path '{self.key_path}' is not a field of {self.schema.__name__}"
            )
        if not is_valid_key_annotation(annotation) or not self.schema.model_fields[self.key_path].is_required():
            raise DeclarationError(
                f"Key path '{self.key_path}' must be a required str, int or float field, "
                f"got {annotation!r}"
            )

        # Never share the caller's dict
        object.__setattr__(self, "indexes", MappingProxyType(dict(self.indexes)))

    def add_index(self, name: str, path: str, unique: bool = False) -> "ObjectStore[T]":
        """Return a copy of this store with one more index; this store is unchanged."""
        if not isinstance(name, str) or not name:
            raise DeclarationError(f"Index name must be a non-empty string, got {name!r}")
        if name in self.indexes:
            raise DeclarationError(f"Index '{name}' already exists on store '{self.name}'")
        if name == self.key_path:
            raise DeclarationError(f"Index name '{name}' collides with the key path of store '{self.name}'")
        if path == self.key_path:
            raise DeclarationError(
                f"Index '{name}' on '{path}' is redundant: '{path}' is the key path of store '{self.name}'"
            )
        if field_annotation(self.schema, path) is None:
            raise DeclarationError(f"Index path '{path}' is not a field of {self.schema.__name__}")

        indexes = dict(self.indexes)
        indexes[name] = Index(name=name, path=path, unique=unique)
        return replace(self, indexes=indexes)

    def create(self, connection) -> None:
        """Create the collection and its indexes. Only valid during an upgrade."""
        connection.create_collection(self.name, self.key_path)
        for index in self.indexes.values():
            connection.create_index(self.name, index.name, index.path, unique=index.unique)

        logger.log_store_operation(self.name, "create", details={
            "key_path": self.key_path,
            "indexes": list(self.indexes)
        })

    def delete(self, connection) -> None:
        """Drop the collection. Only valid during an upgrade."""
        connection.delete_collection(self.name)
        logger.log_store_operation(self.name, "delete")

    def exists_in(self, connection) -> bool:
        return connection.contains(self.name)

    def select(self, shape: Mapping[str, Any]) -> Query[T]:
        return Query(self.schema, shape)

    def bind(self, connection) -> StoreOperations[T]:
        return StoreOperations(self, connection)


def create_object_store(name: str, schema: Type[T], key_path: str) -> ObjectStore[T]:
    """Declare a store with no secondary indexes."""
    return ObjectStore(name=name, schema=schema, key_path=key_path)
