"""
Database: named, versioned set of object stores plus their migration handlers.

connect() drives the engine's open protocol through a small state machine:

    IDLE -> OPENING -> (UPGRADING ->) CONNECTED -> CLOSED
                  \\-> FAILED       \\-> FAILED

Each event the engine yields is handed to _dispatch, which moves the state
and performs the work that state needs (running migrations, wiring the
version-change callback).
"""

from enum import Enum
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional

from ..engine.types import OpenFailed, Opened, UpgradeNeeded
from ..util.logging import logger
from .errors import (
    DatabaseConnectionError,
    DeclarationError,
    EngineError,
    MigrationError,
    MissingMigrationError,
)
from .migration import MigrationHandler, MigrationRegistry
from .object_store import ObjectStore
from .operations import StoreOperations


class ConnectionState(Enum):
    IDLE = "idle"
    OPENING = "opening"
    UPGRADING = "upgrading"
    CONNECTED = "connected"
    FAILED = "failed"
    CLOSED = "closed"


_TRANSITIONS = {
    ConnectionState.IDLE: {ConnectionState.OPENING},
    ConnectionState.OPENING: {ConnectionState.UPGRADING, ConnectionState.CONNECTED, ConnectionState.FAILED},
    ConnectionState.UPGRADING: {ConnectionState.CONNECTED, ConnectionState.FAILED},
    ConnectionState.CONNECTED: {ConnectionState.CLOSED},
    ConnectionState.FAILED: {ConnectionState.OPENING},
    ConnectionState.CLOSED: {ConnectionState.OPENING},
}


class Database:
    """A versioned database declaration and its live connection."""

    def __init__(self, name: str, version: int, stores: Mapping[str, ObjectStore],
                 handlers: Iterable[MigrationHandler] = (), engine=None):
        if isinstance(version, bool) or not isinstance(version, int) or version < 1:
            raise DeclarationError(f"Database version must be a positive integer, got {version!r}")

        if engine is None:
            from .config import get_engine
            engine = get_engine()

        self.name = name
        self.version = version
        self.stores: Mapping[str, ObjectStore] = MappingProxyType(dict(stores))
        self.handlers = MigrationRegistry(handlers)
        self.engine = engine

        self.state = ConnectionState.IDLE
        self._connection = None

    @property
    def connection(self):
        return self._connection

    def _set_state(self, state: ConnectionState, details: Optional[Dict] = None) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid connection state transition {self.state.value} -> {state.value}")
        self.state = state
        logger.log_connection(self.name, self.version, state.value, details)

    def connect(self):
        """Open the database, running migrations when the engine asks for an upgrade."""
        if self.state is ConnectionState.CONNECTED:
            if not self._connection.closed:
                return self._connection
            self._set_state(ConnectionState.CLOSED)

        self._connection = None
        self._set_state(ConnectionState.OPENING)

        request = self.engine.open(self.name, self.version)
        try:
            for event in request:
                try:
                    self._dispatch(event)
                except MigrationError as e:
                    # The engine rolls the upgrade transaction back and re-raises
                    request.throw(e)
                    raise
        except BaseException:
            if self.state in (ConnectionState.OPENING, ConnectionState.UPGRADING):
                self._set_state(ConnectionState.FAILED)
            raise
        finally:
            # Rolls back an upgrade left open by any other failure
            request.close()

        if self._connection is None:
            self._set_state(ConnectionState.FAILED)
            raise DatabaseConnectionError(f"Storage engine finished opening '{self.name}' without a connection")
        return self._connection

    def _dispatch(self, event) -> None:
        if isinstance(event, UpgradeNeeded):
            self._set_state(ConnectionState.UPGRADING, {
                "old_version": event.old_version,
                "new_version": event.new_version
            })
            self._upgrade(event)
        elif isinstance(event, Opened):
            connection = event.connection
            connection.on_version_change = self._on_version_change
            self._connection = connection
            self._set_state(ConnectionState.CONNECTED)
        elif isinstance(event, OpenFailed):
            self._set_state(ConnectionState.FAILED, {"error": str(event.error)})
            native = event.error.native if isinstance(event.error, EngineError) else event.error
            raise DatabaseConnectionError(
                f"Error encountered connecting to database '{self.name}': {event.error}", native
            ) from event.error
        else:
            raise DatabaseConnectionError(f"Unexpected event from storage engine: {event!r}")

    def _upgrade(self, event: UpgradeNeeded) -> None:
        handlers = self.handlers.handlers_for(self.version)
        if not handlers:
            logger.log_migration(self.name, event.old_version, event.new_version, 0, "failed",
                                 {"reason": "no handler registered for target version"})
            self._set_state(ConnectionState.FAILED)
            raise MissingMigrationError(self.name, self.version, self.handlers.versions())

        for handler in handlers:
            try:
                handler.handle(event.connection)
            except Exception as e:
                logger.log_migration(self.name, event.old_version, event.new_version, len(handlers), "failed",
                                     {"handler": handler.name, "error": str(e)})
                self._set_state(ConnectionState.FAILED)
                raise MigrationError(
                    f"Migration handler '{handler.name}' for version {handler.version} of '{self.name}' failed: {e}"
                ) from e

        logger.log_migration(self.name, event.old_version, event.new_version, len(handlers))

    def _on_version_change(self, old_version: int, new_version: Optional[int]) -> None:
        logger.log_connection(self.name, self.version, "version_change", {"requested_version": new_version})
        self.close()

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None
        if self.state is ConnectionState.CONNECTED:
            self._set_state(ConnectionState.CLOSED)

    def store(self, name: str) -> StoreOperations:
        """Operations for a declared store, bound to the current connection."""
        if name not in self.stores:
            raise KeyError(f"Database '{self.name}' declares no store named '{name}'")
        return StoreOperations(self.stores[name], self._connection)

    def health_check(self) -> bool:
        """Check the connection is open and every declared store exists."""
        if self._connection is None or self._connection.closed:
            return False
        try:
            existing = set(self._connection.store_names())
        except EngineError as e:
            logger.error(f"Health check of '{self.name}' failed: {e}")
            return False
        return all(store.name in existing for store in self.stores.values())

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def __repr__(self):
        return f"Database({self.name!r}, version={self.version}, state={self.state.value})"
