"""
Object store declaration tests - key paths, index accumulation and immutability.
"""

from dataclasses import FrozenInstanceError
from typing import Optional

import pytest
from pydantic import BaseModel

from typedstore.core.errors import DeclarationError, UpgradeRequiredError
from typedstore.core.object_store import Index, ObjectStore, create_object_store
from typedstore.core.operations import StoreOperations
from typedstore.core.query import Query
from typedstore.engine.memory import MemoryEngine


class Meta(BaseModel):
    created_at: str
    updated_at: str


class User(BaseModel):
    id: str
    name: Optional[str] = None
    email: str
    age: int = 0
    meta: Optional[Meta] = None


@pytest.fixture
def users():
    return create_object_store("users", User, "id")


class TestCreateObjectStore:
    """Key path validation when a store is declared."""

    def test_declares_store_without_indexes(self, users):
        assert users.name == "users"
        assert users.schema is User
        assert users.key_path == "id"
        assert dict(users.indexes) == {}

    def test_numeric_key_path(self):
        store = create_object_store("by_age", User, "age")
        assert store.key_path == "age"

    def test_unknown_key_path_is_rejected(self):
        with pytest.raises(DeclarationError) as exc_info:
            create_object_store("users", User, "uuid")
        assert "uuid" in str(exc_info.value)

    @pytest.mark.parametrize("key_path", ["name", "meta"])
    def test_optional_or_object_key_path_is_rejected(self, key_path):
        with pytest.raises(DeclarationError):
            create_object_store("users", User, key_path)

    def test_empty_name_is_rejected(self):
        with pytest.raises(DeclarationError):
            create_object_store("", User, "id")

    def test_schema_must_be_a_model(self):
        with pytest.raises(DeclarationError):
            create_object_store("users", dict, "id")

    def test_store_is_frozen(self, users):
        with pytest.raises(FrozenInstanceError):
            users.name = "people"


class TestAddIndex:
    """add_index returns a new declaration and leaves the receiver alone."""

    def test_returns_new_store_with_index(self, users):
        indexed = users.add_index("by_email", "email")

        assert indexed is not users
        assert dict(indexed.indexes) == {"by_email": Index("by_email", "email", False)}
        assert indexed.name == users.name
        assert indexed.key_path == users.key_path

    def test_receiver_store_is_unchanged(self, users):
        users.add_index("by_email", "email")
        assert dict(users.indexes) == {}

    def test_indexes_accumulate_exactly(self, users):
        store = users.add_index("by_email", "email").add_index("by_name", "name").add_index("by_age", "age")
        assert list(store.indexes) == ["by_email", "by_name", "by_age"]
        assert store.indexes["by_name"].path == "name"

    def test_sibling_declarations_are_independent(self, users):
        base = users.add_index("by_email", "email")
        left = base.add_index("by_name", "name")
        right = base.add_index("by_age", "age")

        assert set(left.indexes) == {"by_email", "by_name"}
        assert set(right.indexes) == {"by_email", "by_age"}
        assert set(base.indexes) == {"by_email"}

    def test_unique_flag(self, users):
        store = users.add_index("by_email", "email", unique=True)
        assert store.indexes["by_email"].unique is True

    def test_duplicate_name_is_rejected(self, users):
        store = users.add_index("by_email", "email")
        with pytest.raises(DeclarationError):
            store.add_index("by_email", "name")
        assert dict(store.indexes) == {"by_email": Index("by_email", "email")}

    def test_name_colliding_with_key_path_is_rejected(self, users):
        with pytest.raises(DeclarationError):
            users.add_index("id", "email")

    def test_index_on_key_path_is_rejected(self, users):
        with pytest.raises(DeclarationError):
            users.add_index("by_id", "id")

    def test_unknown_path_is_rejected(self, users):
        with pytest.raises(DeclarationError):
            users.add_index("by_phone", "phone")

    def test_empty_name_is_rejected(self, users):
        with pytest.raises(DeclarationError):
            users.add_index("", "email")

    def test_indexes_mapping_is_read_only(self, users):
        store = users.add_index("by_email", "email")
        with pytest.raises(TypeError):
            store.indexes["by_name"] = Index("by_name", "name")

    def test_caller_dict_is_not_shared(self):
        indexes = {"by_email": Index("by_email", "email")}
        store = ObjectStore("users", User, "id", indexes)
        indexes["by_name"] = Index("by_name", "name")
        assert list(store.indexes) == ["by_email"]


class TestStoreHelpers:
    """select, bind and structural helpers."""

    def test_select_returns_query_over_schema(self, users):
        query = users.select({"email": True})
        assert isinstance(query, Query)
        assert query.schema is User
        assert list(query.result_model.model_fields) == ["email"]

    def test_bind_returns_operations(self, users):
        operations = users.bind(None)
        assert isinstance(operations, StoreOperations)
        assert operations.store is users
        assert operations.name == "users"

    def test_create_requires_upgrade(self, users):
        engine = MemoryEngine()
        events = list(engine.open("app", 1))
        connection = events[-1].connection

        with pytest.raises(UpgradeRequiredError):
            users.create(connection)
        assert not users.exists_in(connection)

    def test_create_and_delete_during_upgrade(self, users):
        engine = MemoryEngine()
        store = users.add_index("by_email", "email", unique=True)

        request = engine.open("app", 1)
        upgrade = next(request)
        store.create(upgrade.connection)
        assert store.exists_in(upgrade.connection)
        assert upgrade.connection.index_names("users") == ["by_email"]

        store.delete(upgrade.connection)
        assert not store.exists_in(upgrade.connection)
        list(request)
