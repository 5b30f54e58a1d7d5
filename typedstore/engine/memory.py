"""
In-memory storage engine. Data lives as long as the engine instance.
"""

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..core.errors import EngineError
from .base import Connection, StorageEngine


@dataclass
class _Index:
    path: str
    unique: bool = False


@dataclass
class _Collection:
    key_path: str
    indexes: Dict[str, _Index] = field(default_factory=dict)
    records: Dict[Any, Dict[str, Any]] = field(default_factory=dict)


@dataclass
class _MemoryDatabase:
    version: int = 0
    collections: Dict[str, _Collection] = field(default_factory=dict)


class MemoryConnection(Connection):
    def __init__(self, engine: "MemoryEngine", name: str, version: int, database: _MemoryDatabase):
        super().__init__(engine, name, version)
        self._db = database
        self._snapshot: Optional[Dict[str, _Collection]] = None

    def _begin_upgrade(self) -> None:
        self._snapshot = copy.deepcopy(self._db.collections)

    def _commit_upgrade(self, version: int) -> None:
        self._db.version = version
        self._snapshot = None

    def _rollback_upgrade(self) -> None:
        if self._snapshot is not None:
            self._db.collections = self._snapshot
            self._snapshot = None

    def _store_names(self) -> List[str]:
        return list(self._db.collections)

    def _key_path(self, store: str) -> Optional[str]:
        collection = self._db.collections.get(store)
        return collection.key_path if collection else None

    def _index_names(self, store: str) -> List[str]:
        return list(self._db.collections[store].indexes)

    def _create_collection(self, store: str, key_path: str) -> None:
        self._db.collections[store] = _Collection(key_path=key_path)

    def _create_index(self, store: str, name: str, path: str, unique: bool) -> None:
        collection = self._db.collections[store]
        if unique:
            seen = set()
            for record in collection.records.values():
                value = record.get(path)
                if value is None:
                    continue
                marker = repr(value)
                if marker in seen:
                    raise EngineError(f"ConstraintError: existing records in '{store}' violate unique index '{name}'")
                seen.add(marker)
        collection.indexes[name] = _Index(path=path, unique=unique)

    def _delete_collection(self, store: str) -> None:
        del self._db.collections[store]

    def _add(self, store: str, key: Any, value: Dict[str, Any]) -> None:
        collection = self._db.collections[store]
        if key in collection.records:
            raise EngineError(f"ConstraintError: key {key!r} already exists in '{store}'")

        for name, index in collection.indexes.items():
            if not index.unique or value.get(index.path) is None:
                continue
            if any(record.get(index.path) == value[index.path] for record in collection.records.values()):
                raise EngineError(f"ConstraintError: unique index '{name}' on '{store}' already holds {value[index.path]!r}")

        collection.records[key] = copy.deepcopy(value)

    def _count(self, store: str) -> int:
        return len(self._db.collections[store].records)

    def _get_key(self, store: str, key: Any) -> Optional[Any]:
        return key if key in self._db.collections[store].records else None

    def _get(self, store: str, key: Any) -> Optional[Dict[str, Any]]:
        record = self._db.collections[store].records.get(key)
        return copy.deepcopy(record) if record is not None else None

    def _get_all_by_index(self, store: str, index: str, value: Any) -> List[Dict[str, Any]]:
        collection = self._db.collections[store]
        path = collection.indexes[index].path
        return [copy.deepcopy(record) for record in collection.records.values() if record.get(path) == value]

    def _close(self) -> None:
        self._db = None


class MemoryEngine(StorageEngine):
    """Dict-backed engine, isolated per instance."""

    def __init__(self):
        super().__init__()
        self._databases: Dict[str, _MemoryDatabase] = {}

    def _connect(self, name: str, version: int) -> Tuple[Connection, int]:
        with self._lock:
            database = self._databases.setdefault(name, _MemoryDatabase())
        return MemoryConnection(self, name, version, database), database.version

    def _drop(self, name: str) -> None:
        with self._lock:
            self._databases.pop(name, None)

    def database_names(self) -> List[str]:
        return sorted(self._databases)
