"""SQLite storage: connection setup, schema and transactions."""

from __future__ import annotations

import sqlite3
import threading
from contextlib import closing, contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional

SCHEMA = """
CREATE TABLE IF NOT EXISTS teams (
    name TEXT PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS users (
    id        TEXT PRIMARY KEY,
    username  TEXT NOT NULL,
    team_name TEXT NOT NULL REFERENCES teams (name),
    is_active INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS pull_requests (
    id         TEXT PRIMARY KEY,
    name       TEXT NOT NULL,
    author_id  TEXT NOT NULL REFERENCES users (id),
    status     TEXT NOT NULL,
    created_at TEXT,
    merged_at  TEXT
);

CREATE TABLE IF NOT EXISTS pull_request_reviewers (
    pull_request_id TEXT NOT NULL REFERENCES pull_requests (id) ON DELETE CASCADE,
    reviewer_id     TEXT NOT NULL REFERENCES users (id),
    PRIMARY KEY (pull_request_id, reviewer_id)
);

CREATE INDEX IF NOT EXISTS idx_pull_request_reviewers_reviewer
    ON pull_request_reviewers (reviewer_id);
"""

_UNIQUE_ERROR_NAMES = frozenset({"SQLITE_CONSTRAINT_UNIQUE", "SQLITE_CONSTRAINT_PRIMARYKEY"})


@dataclass(frozen=True)
class DatabaseConfig:
    """Where the database lives and how long to wait for a lock."""

    path: str = ":memory:"
    timeout: float = 5.0


class Database:
    """A shared connection with nestable transactions.

    A transaction opened while another is active joins the outer one, so
    repositories take part in whatever transaction a service has started.
    """

    def __init__(self, connection: sqlite3.Connection) -> None:
        connection.isolation_level = None
        connection.row_factory = sqlite3.Row
        self._connection = connection
        self._lock = threading.RLock()
        self._depth = 0

    @contextmanager
    def transaction(self) -> Iterator["Database"]:
        """Commit on success, roll back when the block raises."""
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield self
                finally:
                    self._depth -= 1
                return

            self._connection.execute("BEGIN")
            self._depth = 1
            try:
                yield self
            except BaseException:
                self._depth = 0
                if self._connection.in_transaction:
                    self._connection.execute("ROLLBACK")
                raise
            self._depth = 0
            self._connection.execute("COMMIT")

    @contextmanager
    def cursor(self) -> Iterator[sqlite3.Cursor]:
        """Yield a cursor; statements outside a transaction commit at once."""
        with self._lock, closing(self._connection.cursor()) as cur:
            yield cur

    def close(self) -> None:
        with self._lock:
            self._connection.close()

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def open_database(config: Optional[DatabaseConfig] = None) -> Database:
    """Connect, enable foreign keys, create the schema and check the link."""
    config = config or DatabaseConfig()
    connection = sqlite3.connect(
        config.path, timeout=config.timeout, check_same_thread=False
    )
    try:
        connection.execute("PRAGMA foreign_keys = ON")
        connection.executescript(SCHEMA)
        connection.execute("SELECT 1").fetchone()
    except sqlite3.Error:
        connection.close()
        raise
    return Database(connection)


def is_unique_violation(error: BaseException) -> bool:
    """Tell whether an error comes from a unique or primary key constraint."""
    if not isinstance(error, sqlite3.IntegrityError):
        return False
    name = getattr(error, "sqlite_errorname", None)
    if name is not None:
        return name in _UNIQUE_ERROR_NAMES
    return "UNIQUE constraint failed" in str(error)