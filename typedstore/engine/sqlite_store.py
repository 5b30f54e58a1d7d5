"""
SQLite-backed storage engine.

One SQLite file per database name. The schema version lives in
PRAGMA user_version. Every object store is a table of JSON-encoded key and
value columns; secondary indexes are json_extract expression indexes.
"""

import json
import re
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Generator, List, Optional, Tuple, Union

from ..core.errors import EngineError
from ..util.logging import logger
from .base import Connection, StorageEngine

COLLECTIONS_TABLE = "_typedstore_collections"
INDEXES_TABLE = "_typedstore_indexes"


def _quote(identifier: str) -> str:
    """Quote an SQL identifier."""
    return '"' + identifier.replace('"', '""') + '"'


def _table(store: str) -> str:
    return _quote(f"records:{store}")


def _json_path(path: str) -> str:
    """SQL string literal for the JSON path of a top-level field."""
    return "'" + f'$."{path}"'.replace("'", "''") + "'"


def _encode(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"))


def _encode_key(key: Any) -> str:
    """Encode a primary key; integral floats share the text of the equal int."""
    if isinstance(key, float) and key.is_integer():
        key = int(key)
    return _encode(key)


@contextmanager
def _engine_errors(message: str) -> Generator[None, None, None]:
    """Translate sqlite3 failures into EngineError keeping the native error."""
    try:
        yield
    except sqlite3.Error as e:
        raise EngineError(f"{message}: {e}", e) from e


class SQLiteConnection(Connection):
    def __init__(self, engine: "SQLiteEngine", name: str, version: int, conn: sqlite3.Connection):
        super().__init__(engine, name, version)
        self.conn = conn

    # Upgrade transaction

    def _begin_upgrade(self) -> None:
        with _engine_errors(f"Could not start upgrade of '{self.name}'"):
            self.conn.execute("BEGIN IMMEDIATE")

    def _commit_upgrade(self, version: int) -> None:
        with _engine_errors(f"Could not commit upgrade of '{self.name}'"):
            self.conn.execute(f"PRAGMA user_version = {int(version)}")
            self.conn.execute("COMMIT")

    def _rollback_upgrade(self) -> None:
        # Runs while another exception propagates; a failed rollback is logged, not raised
        try:
            if self.conn.in_transaction:
                self.conn.execute("ROLLBACK")
        except sqlite3.Error as e:
            logger.error(f"Could not roll back upgrade of '{self.name}': {e}")

    # Structure

    def _store_names(self) -> List[str]:
        with _engine_errors("Could not list object stores"):
            rows = self.conn.execute(f"SELECT name FROM {COLLECTIONS_TABLE}").fetchall()
        return [row[0] for row in rows]

    def _key_path(self, store: str) -> Optional[str]:
        with _engine_errors(f"Could not read object store '{store}'"):
            row = self.conn.execute(
                f"SELECT key_path FROM {COLLECTIONS_TABLE} WHERE name = ?", (store,)
            ).fetchone()
        return row[0] if row else None

    def _index(self, store: str, index: str) -> Optional[Tuple[str, bool]]:
        with _engine_errors(f"Could not read index '{index}' of '{store}'"):
            row = self.conn.execute(
                f"SELECT path, is_unique FROM {INDEXES_TABLE} WHERE store = ? AND name = ?", (store, index)
            ).fetchone()
        return (row[0], bool(row[1])) if row else None

    def _index_names(self, store: str) -> List[str]:
        with _engine_errors(f"Could not list indexes of '{store}'"):
            rows = self.conn.execute(
                f"SELECT name FROM {INDEXES_TABLE} WHERE store = ?", (store,)
            ).fetchall()
        return [row[0] for row in rows]

    def _create_collection(self, store: str, key_path: str) -> None:
        with _engine_errors(f"Could not create object store '{store}'"):
            self.conn.execute(
                f"CREATE TABLE {_table(store)} (record_key TEXT PRIMARY KEY, record_value TEXT NOT NULL)"
            )
            self.conn.execute(
                f"INSERT INTO {COLLECTIONS_TABLE} (name, key_path) VALUES (?, ?)", (store, key_path)
            )

    def _create_index(self, store: str, name: str, path: str, unique: bool) -> None:
        kind = "UNIQUE INDEX" if unique else "INDEX"
        with _engine_errors(f"Could not create index '{name}' on '{store}'"):
            self.conn.execute(
                f"CREATE {kind} {_quote(f'index:{store}:{name}')} "
                f"ON {_table(store)} (json_extract(record_value, {_json_path(path)}))"
            )
            self.conn.execute(
                f"INSERT INTO {INDEXES_TABLE} (store, name, path, is_unique) VALUES (?, ?, ?, ?)",
                (store, name, path, int(unique))
            )

    def _delete_collection(self, store: str) -> None:
        # Dropping the table drops its indexes
        with _engine_errors(f"Could not delete object store '{store}'"):
            self.conn.execute(f"DROP TABLE {_table(store)}")
            self.conn.execute(f"DELETE FROM {INDEXES_TABLE} WHERE store = ?", (store,))
            self.conn.execute(f"DELETE FROM {COLLECTIONS_TABLE} WHERE name = ?", (store,))

    # Records

    def _add(self, store: str, key: Any, value: Dict[str, Any]) -> None:
        with _engine_errors(f"Could not add record {key!r} to '{store}'"):
            self.conn.execute(
                f"INSERT INTO {_table(store)} (record_key, record_value) VALUES (?, ?)", (_encode_key(key), _encode(value))
            )

    def _count(self, store: str) -> int:
        with _engine_errors(f"Could not count '{store}'"):
            return self.conn.execute(f"SELECT COUNT(*) FROM {_table(store)}").fetchone()[0]

    def _get_key(self, store: str, key: Any) -> Optional[Any]:
        with _engine_errors(f"Could not look up key {key!r} in '{store}'"):
            row = self.conn.execute(
                f"SELECT record_key FROM {_table(store)} WHERE record_key = ?", (_encode_key(key),)
            ).fetchone()
        return json.loads(row[0]) if row else None

    def _get(self, store: str, key: Any) -> Optional[Dict[str, Any]]:
        with _engine_errors(f"Could not read key {key!r} from '{store}'"):
            row = self.conn.execute(
                f"SELECT record_value FROM {_table(store)} WHERE record_key = ?", (_encode_key(key),)
            ).fetchone()
        return json.loads(row[0]) if row else None

    def _get_all_by_index(self, store: str, index: str, value: Any) -> List[Dict[str, Any]]:
        path, _ = self._index(store, index)
        # json_extract returns JSON text for arrays and objects
        if isinstance(value, (dict, list)):
            value = json.dumps(value, separators=(",", ":"))
        with _engine_errors(f"Could not read index '{index}' of '{store}'"):
            rows = self.conn.execute(
                f"SELECT record_value FROM {_table(store)} "
                f"WHERE json_extract(record_value, {_json_path(path)}) = ? ORDER BY rowid",
                (value,)
            ).fetchall()
        return [json.loads(row[0]) for row in rows]

    def _close(self) -> None:
        self.conn.close()


class SQLiteEngine(StorageEngine):
    """Stores each database as <data_dir>/<name>.db."""

    def __init__(self, data_dir: Union[str, Path], timeout: float = 5.0):
        super().__init__()
        self.data_dir = Path(data_dir)
        self.timeout = timeout

    def path_for(self, name: str) -> Path:
        safe_name = re.sub(r"[^A-Za-z0-9_.-]", "_", name)
        return self.data_dir / f"{safe_name}.db"

    def _connect(self, name: str, version: int) -> Tuple[Connection, int]:
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise EngineError(f"Could not create data directory {self.data_dir}: {e}", e) from e

        with _engine_errors(f"Could not open database '{name}'"):
            # Autocommit; the upgrade transaction is managed explicitly
            conn = sqlite3.connect(self.path_for(name), timeout=self.timeout, isolation_level=None)

        try:
            with _engine_errors(f"Could not initialize database '{name}'"):
                conn.execute(
                    f"CREATE TABLE IF NOT EXISTS {COLLECTIONS_TABLE} ("
                    "name TEXT PRIMARY KEY, key_path TEXT NOT NULL)"
                )
                conn.execute(
                    f"CREATE TABLE IF NOT EXISTS {INDEXES_TABLE} ("
                    "store TEXT NOT NULL, name TEXT NOT NULL, path TEXT NOT NULL, "
                    "is_unique INTEGER NOT NULL DEFAULT 0, PRIMARY KEY (store, name))"
                )
                old_version = conn.execute("PRAGMA user_version").fetchone()[0]
        except EngineError:
            conn.close()
            raise

        return SQLiteConnection(self, name, version, conn), old_version

    def _drop(self, name: str) -> None:
        path = self.path_for(name)
        for candidate in (path, Path(f"{path}-journal"), Path(f"{path}-wal"), Path(f"{path}-shm")):
            candidate.unlink(missing_ok=True)
