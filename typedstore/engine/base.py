"""
Storage engine interfaces.

A StorageEngine opens versioned databases. open() is a generator of events:
at most one UpgradeNeeded, followed by exactly one Opened or OpenFailed.
While the consumer handles UpgradeNeeded the engine holds an upgrade
transaction open; throwing an exception into the generator rolls that
transaction back and re-raises the exception.
"""

import math
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from ..core.errors import EngineError, UpgradeRequiredError
from ..util.logging import logger
from .types import OpenEvent, Opened, OpenFailed, UpgradeNeeded


class Connection(ABC):
    """An open database. Public methods check state, subclasses implement the _hooks."""

    def __init__(self, engine: "StorageEngine", name: str, version: int):
        self.engine = engine
        self.name = name
        self.version = version
        self.closed = False
        self.upgrading = False
        # Called with (old_version, new_version) when another open wants a newer version
        self.on_version_change: Optional[Callable[[int, Optional[int]], None]] = None

    def _check_open(self):
        if self.closed:
            raise EngineError(f"InvalidStateError: connection to '{self.name}' is closed")

    def _check_upgrading(self):
        self._check_open()
        if not self.upgrading:
            raise UpgradeRequiredError(
                f"Structural changes to '{self.name}' are only allowed during an upgrade"
            )

    def _require_store(self, store: str) -> str:
        key_path = self._key_path(store)
        if key_path is None:
            raise EngineError(f"NotFoundError: object store '{store}' does not exist in '{self.name}'")
        return key_path

    @staticmethod
    def _check_key(key: Any) -> Any:
        if isinstance(key, bool) or not isinstance(key, (str, int, float)):
            raise EngineError(f"DataError: {key!r} is not a valid key")
        if isinstance(key, float) and math.isnan(key):
            raise EngineError("DataError: NaN is not a valid key")
        return key

    # Structure

    def store_names(self) -> List[str]:
        self._check_open()
        return sorted(self._store_names())

    def contains(self, store: str) -> bool:
        return store in self.store_names()

    def index_names(self, store: str) -> List[str]:
        self._check_open()
        self._require_store(store)
        return sorted(self._index_names(store))

    def create_collection(self, store: str, key_path: str) -> None:
        self._check_upgrading()
        if self._key_path(store) is not None:
            raise EngineError(f"ConstraintError: object store '{store}' already exists in '{self.name}'")
        self._create_collection(store, key_path)

    def create_index(self, store: str, name: str, path: str, unique: bool = False) -> None:
        self._check_upgrading()
        self._require_store(store)
        if name in self._index_names(store):
            raise EngineError(f"ConstraintError: index '{name}' already exists on '{store}'")
        self._create_index(store, name, path, unique)

    def delete_collection(self, store: str) -> None:
        self._check_upgrading()
        self._require_store(store)
        self._delete_collection(store)

    # Records

    def add(self, store: str, value: Dict[str, Any]) -> Any:
        """Add a record; its key is read from the store's key path."""
        self._check_open()
        key_path = self._require_store(store)
        if value.get(key_path) is None:
            raise EngineError(f"DataError: record has no value at key path '{key_path}'")
        key = self._check_key(value[key_path])
        self._add(store, key, value)
        return key

    def count(self, store: str) -> int:
        self._check_open()
        self._require_store(store)
        return self._count(store)

    def get_key(self, store: str, key: Any) -> Optional[Any]:
        self._check_open()
        self._require_store(store)
        return self._get_key(store, self._check_key(key))

    def get(self, store: str, key: Any) -> Optional[Dict[str, Any]]:
        self._check_open()
        self._require_store(store)
        return self._get(store, self._check_key(key))

    def get_all_by_index(self, store: str, index: str, value: Any) -> List[Dict[str, Any]]:
        self._check_open()
        self._require_store(store)
        if index not in self._index_names(store):
            raise EngineError(f"NotFoundError: index '{index}' does not exist on '{store}'")
        return self._get_all_by_index(store, index, value)

    def close(self) -> None:
        if self.closed:
            return
        self._close()
        self.closed = True
        self.upgrading = False
        self.engine._release(self)

    # Upgrade transaction hooks

    @abstractmethod
    def _begin_upgrade(self) -> None: ...

    @abstractmethod
    def _commit_upgrade(self, version: int) -> None: ...

    @abstractmethod
    def _rollback_upgrade(self) -> None: ...

    # Storage hooks

    @abstractmethod
    def _store_names(self) -> List[str]: ...

    @abstractmethod
    def _key_path(self, store: str) -> Optional[str]:
        """Key path of store, or None when the store does not exist."""

    @abstractmethod
    def _index_names(self, store: str) -> List[str]: ...

    @abstractmethod
    def _create_collection(self, store: str, key_path: str) -> None: ...

    @abstractmethod
    def _create_index(self, store: str, name: str, path: str, unique: bool) -> None: ...

    @abstractmethod
    def _delete_collection(self, store: str) -> None: ...

    @abstractmethod
    def _add(self, store: str, key: Any, value: Dict[str, Any]) -> None: ...

    @abstractmethod
    def _count(self, store: str) -> int: ...

    @abstractmethod
    def _get_key(self, store: str, key: Any) -> Optional[Any]: ...

    @abstractmethod
    def _get(self, store: str, key: Any) -> Optional[Dict[str, Any]]: ...

    @abstractmethod
    def _get_all_by_index(self, store: str, index: str, value: Any) -> List[Dict[str, Any]]: ...

    @abstractmethod
    def _close(self) -> None: ...

    def __repr__(self):
        state = "closed" if self.closed else ("upgrading" if self.upgrading else "open")
        return f"{self.__class__.__name__}({self.name!r}, version={self.version}, {state})"


class StorageEngine(ABC):
    """Abstract versioned storage engine."""

    def __init__(self):
        self._connections: Dict[str, List[Connection]] = {}
        self._lock = threading.Lock()

    @abstractmethod
    def _connect(self, name: str, version: int) -> Tuple[Connection, int]:
        """Open name and return the connection with the currently stored version."""

    @abstractmethod
    def _drop(self, name: str) -> None:
        """Remove all data stored for name."""

    def open(self, name: str, version: int) -> Iterator[OpenEvent]:
        """Open name at version, yielding UpgradeNeeded (maybe) then Opened or OpenFailed."""
        if isinstance(version, bool) or not isinstance(version, int) or version < 1:
            yield OpenFailed(EngineError(f"TypeError: version must be a positive integer, got {version!r}"))
            return

        self._notify_version_change(name, version)

        try:
            connection, old_version = self._connect(name, version)
        except EngineError as e:
            yield OpenFailed(e)
            return

        if version < old_version:
            self._discard(connection)
            yield OpenFailed(EngineError(
                f"VersionError: requested version {version} is less than the existing version {old_version} of '{name}'"
            ))
            return

        if version > old_version:
            try:
                connection._begin_upgrade()
            except EngineError as e:
                self._discard(connection)
                yield OpenFailed(e)
                return

            connection.upgrading = True
            try:
                yield UpgradeNeeded(connection, old_version, version)
            except BaseException:
                connection._rollback_upgrade()
                self._discard(connection)
                raise

            connection.upgrading = False
            try:
                connection._commit_upgrade(version)
            except EngineError as e:
                connection._rollback_upgrade()
                self._discard(connection)
                yield OpenFailed(e)
                return

        with self._lock:
            self._connections.setdefault(name, []).append(connection)
        yield Opened(connection)

    def delete_database(self, name: str) -> None:
        """Close every connection to name (after notifying it) and drop its data."""
        self._notify_version_change(name, None)
        for connection in self.open_connections(name):
            connection.close()
        self._drop(name)
        logger.info(f"Deleted database '{name}'")

    def open_connections(self, name: str) -> List[Connection]:
        with self._lock:
            return list(self._connections.get(name, []))

    def _notify_version_change(self, name: str, new_version: Optional[int]) -> None:
        """Tell older open connections to name that a newer version (None: deletion) is wanted."""
        def is_older(connection):
            return new_version is None or connection.version < new_version

        for connection in self.open_connections(name):
            if is_older(connection) and connection.on_version_change is not None:
                connection.on_version_change(connection.version, new_version)

        blocked = [c for c in self.open_connections(name) if is_older(c)]
        if blocked and new_version is not None:
            logger.warning(
                f"Opening '{name}' at version {new_version} while {len(blocked)} older connection(s) remain open"
            )

    @staticmethod
    def _discard(connection: Connection) -> None:
        # Connection never reached Opened, so it was never tracked
        connection.upgrading = False
        connection._close()
        connection.closed = True

    def _release(self, connection: Connection) -> None:
        with self._lock:
            connections = self._connections.get(connection.name, [])
            if connection in connections:
                connections.remove(connection)
