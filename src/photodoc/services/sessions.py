"""Local session lifecycle and the image read path."""

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Protocol

from photodoc.adapters.local_image_cache import LocalImageCache
from photodoc.domain.sessions import Identity, SessionRecord, new_session_id
from photodoc.services.sync import SyncEngine

logger = logging.getLogger(__name__)

SessionListener = Callable[[list[SessionRecord]], None]


class SessionStore(Protocol):
    """Persistence interface for local session records."""

    def get_all(self) -> list[SessionRecord]:
        """Return all sessions, newest first."""

    def search(self, query: str) -> list[SessionRecord]:
        """Return sessions whose id or name contains the query, newest first."""

    def get_by_id(self, session_id: str) -> SessionRecord | None:
        """Return a session by id, if present."""

    def upsert(self, session: SessionRecord) -> None:
        """Insert or replace a session."""

    def update(self, session: SessionRecord) -> None:
        """Update an existing session."""

    def delete(self, session_id: str) -> None:
        """Delete a session row."""

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a change listener and return an unsubscribe callable."""


@dataclass
class SessionService:
    """Application service for local sessions and their images."""

    store: SessionStore
    image_cache: LocalImageCache
    sync_engine: SyncEngine
    session_id_prefix: str = "OVH"

    def create_session(
        self, name: str, age: str, captured_files: Sequence[Path]
    ) -> SessionRecord:
        """Finalize a capture: store its images and insert the record."""
        cleaned_name = name.strip()
        cleaned_age = age.strip()
        if not cleaned_name:
            raise ValueError("Patient name is required")
        if not cleaned_age:
            raise ValueError("Patient age is required")

        created_at = int(time.time() * 1000)
        session = SessionRecord(
            session_id=new_session_id(self.session_id_prefix, created_at),
            name=cleaned_name,
            age=cleaned_age,
            created_at=created_at,
        )
        stored = self.image_cache.store_captured(session.session_id, captured_files)
        self.store.upsert(session)
        logger.info(
            "Created session %s with %d images", session.session_id, len(stored)
        )
        return session

    def list_sessions(self, query: str | None = None) -> list[SessionRecord]:
        """Return all sessions, or those matching a search query."""
        if query and query.strip():
            return self.store.search(query.strip())
        return self.store.get_all()

    def get_session(self, session_id: str) -> SessionRecord | None:
        return self.store.get_by_id(session_id)

    def delete_session(self, session_id: str) -> None:
        """Delete the session row; image files are left on disk."""
        self.store.delete(session_id)

    def mark_uploaded(self, session_id: str) -> SessionRecord | None:
        """Flip the uploaded flag after a confirmed upload."""
        session = self.store.get_by_id(session_id)
        if session is None:
            return None
        if session.uploaded:
            return session
        updated = replace(session, uploaded=True)
        self.store.update(updated)
        return updated

    async def load_images(
        self, identity: Identity | None, session_id: str
    ) -> list[Path]:
        """Return local images, fetching from remote only when none exist.

        A directory holding any image is used as-is, even if some images were
        removed; only an absent or empty directory triggers materialization.
        """
        list_images = self.image_cache.list_images
        local = await self.sync_engine.run_io(list_images, session_id)
        if local:
            return local

        logger.info("No local images for %s; fetching from remote", session_id)
        if not await self.sync_engine.materialize_images(identity, session_id):
            return []
        return await self.sync_engine.run_io(list_images, session_id)
