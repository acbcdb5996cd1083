"""SQLite database operations for studentml.

Provides persistent storage for projects, fields, training data, class
tenants and service credentials. The stores in this package talk to the
database only through the generic operations below (insert-one,
insert-many, select, count, count-grouped, update-where, delete-where),
all of which can join an explicit ``transaction()``.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)


# Columns per table, in insert order. Table and column names used in SQL
# statements must come from here.
TABLES: Dict[str, Tuple[str, ...]] = {
    "projects": (
        "id", "userid", "classid", "typeid", "name", "language", "labels", "numfields",
    ),
    "numbersprojectsfields": (
        "id", "projectid", "userid", "classid", "name", "fieldtype", "choices",
    ),
    "texttraining": ("id", "projectid", "textdata", "label"),
    "numbertraining": ("id", "projectid", "numberdata", "label"),
    "imagetraining": ("id", "projectid", "imageurl", "label"),
    "tenants": (
        "id", "projecttypes", "ismanaged", "maxusers", "maxprojectsperuser",
        "textclassifiersexpiry", "imageclassifiersexpiry",
    ),
    "bluemixcredentials": ("id", "classid", "servicetype", "url", "username", "password"),
}

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS projects (
        seq INTEGER PRIMARY KEY AUTOINCREMENT,
        id TEXT NOT NULL UNIQUE,
        userid TEXT NOT NULL,
        classid TEXT NOT NULL,
        typeid INTEGER NOT NULL,
        name TEXT NOT NULL,
        language TEXT,
        labels TEXT NOT NULL DEFAULT '',
        numfields INTEGER NOT NULL DEFAULT 0
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS numbersprojectsfields (
        seq INTEGER PRIMARY KEY AUTOINCREMENT,
        id TEXT NOT NULL UNIQUE,
        projectid TEXT NOT NULL,
        userid TEXT NOT NULL,
        classid TEXT NOT NULL,
        name TEXT NOT NULL,
        fieldtype INTEGER NOT NULL,
        choices TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS texttraining (
        seq INTEGER PRIMARY KEY AUTOINCREMENT,
        id TEXT NOT NULL UNIQUE,
        projectid TEXT NOT NULL,
        textdata TEXT NOT NULL,
        label TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS numbertraining (
        seq INTEGER PRIMARY KEY AUTOINCREMENT,
        id TEXT NOT NULL UNIQUE,
        projectid TEXT NOT NULL,
        numberdata TEXT NOT NULL,
        label TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS imagetraining (
        seq INTEGER PRIMARY KEY AUTOINCREMENT,
        id TEXT NOT NULL UNIQUE,
        projectid TEXT NOT NULL,
        imageurl TEXT NOT NULL,
        label TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS tenants (
        seq INTEGER PRIMARY KEY AUTOINCREMENT,
        id TEXT NOT NULL UNIQUE,
        projecttypes TEXT NOT NULL,
        ismanaged INTEGER NOT NULL DEFAULT 0,
        maxusers INTEGER NOT NULL,
        maxprojectsperuser INTEGER NOT NULL,
        textclassifiersexpiry INTEGER NOT NULL,
        imageclassifiersexpiry INTEGER NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS bluemixcredentials (
        seq INTEGER PRIMARY KEY AUTOINCREMENT,
        id TEXT NOT NULL UNIQUE,
        classid TEXT NOT NULL,
        servicetype TEXT NOT NULL,
        url TEXT NOT NULL,
        username TEXT NOT NULL,
        password TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_projects_class_user ON projects(classid, userid)",
    "CREATE INDEX IF NOT EXISTS idx_fields_project ON numbersprojectsfields(projectid)",
    "CREATE INDEX IF NOT EXISTS idx_texttraining_label ON texttraining(projectid, label)",
    "CREATE INDEX IF NOT EXISTS idx_numbertraining_label ON numbertraining(projectid, label)",
    "CREATE INDEX IF NOT EXISTS idx_imagetraining_label ON imagetraining(projectid, label)",
    "CREATE INDEX IF NOT EXISTS idx_credentials_class ON bluemixcredentials(classid)",
)


class StudentMLDatabase:
    """SQLite database for studentml persistence.

    Each thread gets its own connection, so SQLite alone decides what
    concurrent readers see. Writes made inside one ``transaction()`` become
    visible to other connections all at once.

    Usage:
        db = StudentMLDatabase("data/studentml.db")
        db.initialize()

        db.insert_one("texttraining", {"id": "...", "projectid": "...", ...})
        rows = db.select("texttraining", {"projectid": "..."}, limit=10)
    """

    def __init__(self, db_path: str | Path, busy_timeout_ms: int = 30000):
        """Initialize database connection.

        Args:
            db_path: Path to SQLite database file
            busy_timeout_ms: How long a connection waits on a locked database
        """
        self.db_path = Path(db_path)
        self.busy_timeout_ms = busy_timeout_ms
        self._local = threading.local()
        self._connections: List[Tuple[threading.Thread, sqlite3.Connection]] = []
        self._connections_lock = threading.Lock()

    @classmethod
    def from_config(cls, config: Any) -> StudentMLDatabase:
        """Create from a DatabaseConfig."""
        return cls(config.get_absolute_path(), busy_timeout_ms=config.busy_timeout_ms)

    @property
    def connection(self) -> sqlite3.Connection:
        """Get or create this thread's database connection."""
        conn = getattr(self._local, "connection", None)
        if conn is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(
                str(self.db_path),
                timeout=self.busy_timeout_ms / 1000.0,
                check_same_thread=False,
                isolation_level=None,
            )
            conn.row_factory = sqlite3.Row
            conn.execute(f"PRAGMA busy_timeout={int(self.busy_timeout_ms)}")
            self._local.connection = conn
            self._local.depth = 0
            with self._connections_lock:
                self._close_dead_thread_connections()
                self._connections.append((threading.current_thread(), conn))
        return conn

    @property
    def open_connections(self) -> int:
        """Number of connections currently held open by this database."""
        with self._connections_lock:
            return len(self._connections)

    def release_connection(self) -> None:
        """Close the calling thread's connection.

        Worker threads call this when they are done with the database. The
        next operation on the thread opens a fresh connection.
        """
        conn = getattr(self._local, "connection", None)
        if conn is None:
            return
        if self._local.depth:
            raise RuntimeError("Cannot release a connection inside a transaction")
        with self._connections_lock:
            self._connections = [
                (thread, held) for thread, held in self._connections if held is not conn
            ]
        conn.close()
        self._local.connection = None

    def _close_dead_thread_connections(self) -> None:
        # Caller holds _connections_lock
        alive = []
        for thread, conn in self._connections:
            if thread.is_alive():
                alive.append((thread, conn))
            else:
                conn.close()
        if len(alive) < len(self._connections):
            logger.debug(
                "Closed %d connections of finished threads", len(self._connections) - len(alive)
            )
        self._connections = alive

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Cursor]:
        """Context manager for database transactions.

        Nested use joins the outermost transaction, which commits or rolls
        back everything at once.
        """
        conn = self.connection
        cursor = conn.cursor()
        outermost = self._local.depth == 0
        if outermost:
            cursor.execute("BEGIN IMMEDIATE")
        self._local.depth += 1
        try:
            yield cursor
            if outermost:
                cursor.execute("COMMIT")
        except Exception:
            if outermost and conn.in_transaction:
                cursor.execute("ROLLBACK")
            raise
        finally:
            self._local.depth -= 1
            cursor.close()

    def initialize(self) -> None:
        """Create database schema if it doesn't exist."""
        # WAL is persistent, so later connections to the file inherit it
        self.connection.execute("PRAGMA journal_mode=WAL")
        with self.transaction() as cursor:
            for statement in _SCHEMA:
                cursor.execute(statement)
        logger.debug("Initialized database schema at %s", self.db_path)

    def list_tables(self) -> List[str]:
        rows = self._fetch_all(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name NOT LIKE 'sqlite_%' ORDER BY name"
        )
        return [row["name"] for row in rows]

    def close(self) -> None:
        """Close every connection opened by this database."""
        with self._connections_lock:
            for _, conn in self._connections:
                conn.close()
            self._connections.clear()
        self._local = threading.local()

    def __enter__(self) -> StudentMLDatabase:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # Generic row operations

    def insert_one(self, table: str, row: Mapping[str, Any]) -> None:
        self.insert_many(table, [row])

    def insert_many(self, table: str, rows: Sequence[Mapping[str, Any]]) -> int:
        """Insert a batch of rows in a single transaction.

        Returns:
            Number of rows inserted
        """
        if not rows:
            return 0
        columns = _columns(table)
        statement = (
            f"INSERT INTO {table} ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)})"
        )
        values = [tuple(row.get(column) for column in columns) for row in rows]
        with self.transaction() as cursor:
            cursor.executemany(statement, values)
        return len(values)

    def upsert(self, table: str, row: Mapping[str, Any]) -> None:
        """Insert a row, replacing the values of an existing row with the same id."""
        columns = _columns(table)
        updates = ", ".join(f"{column} = excluded.{column}" for column in columns if column != "id")
        statement = (
            f"INSERT INTO {table} ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)}) "
            f"ON CONFLICT(id) DO UPDATE SET {updates}"
        )
        with self.transaction() as cursor:
            cursor.execute(statement, tuple(row.get(column) for column in columns))

    def select(
        self,
        table: str,
        where: Optional[Mapping[str, Any]] = None,
        columns: Optional[Sequence[str]] = None,
        limit: Optional[int] = None,
        offset: int = 0,
        distinct: bool = False,
    ) -> List[sqlite3.Row]:
        """Select rows in insertion order.

        Args:
            table: Table name
            where: Column equality filters, ANDed together
            columns: Columns to return (all columns if None)
            limit: Maximum number of rows (no limit if None)
            offset: Number of rows to skip
            distinct: Return distinct rows only (ordered by first occurrence)
        """
        selected = ", ".join(_checked(table, columns)) if columns else ", ".join(_columns(table))
        clause, params = _where(table, where)
        if distinct:
            statement = (
                f"SELECT {selected} FROM {table}{clause} "
                f"GROUP BY {selected} ORDER BY MIN(seq)"
            )
        else:
            statement = f"SELECT {selected} FROM {table}{clause} ORDER BY seq"
        if limit is not None or offset:
            statement += " LIMIT ? OFFSET ?"
            params += [-1 if limit is None else limit, offset]
        return self._fetch_all(statement, params)

    def count(self, table: str, where: Optional[Mapping[str, Any]] = None) -> int:
        clause, params = _where(table, where)
        rows = self._fetch_all(f"SELECT COUNT(*) AS count FROM {table}{clause}", params)
        return rows[0]["count"]

    def count_grouped(
        self,
        table: str,
        column: str,
        where: Optional[Mapping[str, Any]] = None,
    ) -> Dict[Any, int]:
        """Count rows per distinct value of a column."""
        _checked(table, [column])
        clause, params = _where(table, where)
        rows = self._fetch_all(
            f"SELECT {column} AS value, COUNT(*) AS count FROM {table}{clause} GROUP BY {column}",
            params,
        )
        return {row["value"]: row["count"] for row in rows}

    def update_where(
        self,
        table: str,
        values: Mapping[str, Any],
        where: Mapping[str, Any],
    ) -> int:
        """Update every matching row in a single statement.

        Returns:
            Number of rows updated
        """
        assignments = ", ".join(f"{column} = ?" for column in _checked(table, values.keys()))
        clause, params = _where(table, where)
        with self.transaction() as cursor:
            cursor.execute(
                f"UPDATE {table} SET {assignments}{clause}",
                list(values.values()) + params,
            )
            return cursor.rowcount

    def delete_where(self, table: str, where: Mapping[str, Any]) -> int:
        """Delete every matching row.

        Returns:
            Number of rows deleted
        """
        clause, params = _where(table, where)
        if not clause:
            raise ValueError("Refusing to delete without a filter")
        with self.transaction() as cursor:
            cursor.execute(f"DELETE FROM {table}{clause}", params)
            return cursor.rowcount

    # Helper methods

    def _fetch_all(self, statement: str, params: Sequence[Any] = ()) -> List[sqlite3.Row]:
        cursor = self.connection.cursor()
        try:
            cursor.execute(statement, params)
            return cursor.fetchall()
        finally:
            cursor.close()


def _columns(table: str) -> Tuple[str, ...]:
    if table not in TABLES:
        raise ValueError(f"Unknown table: {table}")
    return TABLES[table]


def _checked(table: str, columns: Sequence[str]) -> List[str]:
    known = _columns(table)
    columns = list(columns)
    for column in columns:
        if column not in known:
            raise ValueError(f"Unknown column {column} in table {table}")
    return columns


def _where(table: str, where: Optional[Mapping[str, Any]]) -> Tuple[str, List[Any]]:
    if not where:
        return "", []
    parts = []
    params: List[Any] = []
    for column in _checked(table, where.keys()):
        value = where[column]
        if value is None:
            parts.append(f"{column} IS NULL")
        else:
            parts.append(f"{column} = ?")
            params.append(value)
    return " WHERE " + " AND ".join(parts), params
