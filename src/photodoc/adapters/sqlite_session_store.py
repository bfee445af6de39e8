"""SQLite-backed local session store."""

import logging
import sqlite3
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path

from photodoc.domain.sessions import SessionRecord
from photodoc.services.sessions import SessionListener, SessionStore

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS sessions (
    session_id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    age TEXT NOT NULL,
    created_at INTEGER NOT NULL,
    uploaded INTEGER NOT NULL DEFAULT 0
)
"""

_COLUMNS = "session_id, name, age, created_at, uploaded"


@dataclass
class SqliteSessionStore(SessionStore):
    """SQLite implementation for local session records.

    A connection is opened per operation so the store can be shared between
    the event loop and worker threads.
    """

    path: Path
    _listeners: list[SessionListener] = field(default_factory=list, init=False)

    def __post_init__(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as connection:
            connection.execute(_SCHEMA)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        connection = sqlite3.connect(self.path)
        try:
            with connection:
                yield connection
        finally:
            connection.close()

    def get_all(self) -> list[SessionRecord]:
        """Return all sessions, newest first."""
        with self._connect() as connection:
            rows = connection.execute(
                f"SELECT {_COLUMNS} FROM sessions ORDER BY created_at DESC"  # noqa: S608
            ).fetchall()
        return [_row_to_record(row) for row in rows]

    def search(self, query: str) -> list[SessionRecord]:
        """Return sessions whose id or name contains the query."""
        with self._connect() as connection:
            rows = connection.execute(
                f"SELECT {_COLUMNS} FROM sessions "  # noqa: S608
                "WHERE instr(lower(session_id), lower(?)) > 0 "
                "OR instr(lower(name), lower(?)) > 0 "
                "ORDER BY created_at DESC",
                (query, query),
            ).fetchall()
        return [_row_to_record(row) for row in rows]

    def get_by_id(self, session_id: str) -> SessionRecord | None:
        """Return a session by id, if present."""
        with self._connect() as connection:
            row = connection.execute(
                f"SELECT {_COLUMNS} FROM sessions WHERE session_id = ?",  # noqa: S608
                (session_id,),
            ).fetchone()
        return _row_to_record(row) if row else None

    def upsert(self, session: SessionRecord) -> None:
        """Insert a session, replacing any row with the same id."""
        with self._connect() as connection:
            connection.execute(
                f"INSERT OR REPLACE INTO sessions ({_COLUMNS}) "  # noqa: S608
                "VALUES (?, ?, ?, ?, ?)",
                (
                    session.session_id,
                    session.name,
                    session.age,
                    session.created_at,
                    int(session.uploaded),
                ),
            )
        self._notify()

    def update(self, session: SessionRecord) -> None:
        """Update an existing session; unknown ids are ignored."""
        with self._connect() as connection:
            cursor = connection.execute(
                "UPDATE sessions SET name = ?, age = ?, created_at = ?, uploaded = ? "
                "WHERE session_id = ?",
                (
                    session.name,
                    session.age,
                    session.created_at,
                    int(session.uploaded),
                    session.session_id,
                ),
            )
        if cursor.rowcount == 0:
            logger.warning("Update for unknown session %s ignored", session.session_id)
            return
        self._notify()

    def delete(self, session_id: str) -> None:
        """Delete a session row."""
        with self._connect() as connection:
            connection.execute(
                "DELETE FROM sessions WHERE session_id = ?", (session_id,)
            )
        self._notify()

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a listener receiving the full list after every change."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        if not self._listeners:
            return
        sessions = self.get_all()
        for listener in list(self._listeners):
            listener(sessions)


def _row_to_record(row: tuple) -> SessionRecord:
    session_id, name, age, created_at, uploaded = row
    return SessionRecord(
        session_id=session_id,
        name=name,
        age=age,
        created_at=int(created_at),
        uploaded=bool(uploaded),
    )
