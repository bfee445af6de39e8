"""Synchronization between the local session cache and remote blob storage."""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable, Sequence
from concurrent.futures import Executor
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path
from typing import Protocol, TypeVar

from photodoc.adapters.local_image_cache import LocalImageCache, is_image_name
from photodoc.domain.errors import (
    AuthenticationMissing,
    BlobNotFound,
    SyncError,
    TransportFailure,
)
from photodoc.domain.sessions import (
    Identity,
    RemoteSessionSummary,
    SessionRecord,
    UploadProgress,
    decode_metadata,
    encode_metadata,
)

logger = logging.getLogger(__name__)

SESSIONS_PREFIX = "sessions"
METADATA_FILE = "metadata.json"
IMAGES_FOLDER = "images"

_T = TypeVar("_T")


@dataclass(frozen=True)
class BlobListing:
    """Direct children of a blob prefix."""

    folders: list[str] = field(default_factory=list)
    blobs: list[str] = field(default_factory=list)


class BlobStore(Protocol):
    """Path-addressed remote blob storage with folder-like prefixes."""

    def write_bytes(self, path: str, data: bytes, content_type: str) -> None:
        """Create or overwrite a blob with the given bytes."""

    def write_from_file(self, path: str, local_file: Path, content_type: str) -> None:
        """Create or overwrite a blob with a local file's content."""

    def read_bytes(self, path: str) -> bytes:
        """Return a blob's content."""

    def read_to_file(self, path: str, local_file: Path) -> None:
        """Download a blob into a local file."""

    def list_children(self, prefix: str) -> BlobListing:
        """Return the folders and blobs directly under a prefix."""


def namespace_root(identity: Identity) -> str:
    """Return the per-user prefix all of a user's sessions live under."""
    return f"{SESSIONS_PREFIX}/{identity.user_id}"


def remote_image_name(session_id: str, position: int) -> str:
    """Return the blob name for the image at a 1-based upload position."""
    return f"{session_id}_img{position}.jpg"


def _require_identity(identity: Identity | None) -> Identity:
    if identity is None:
        raise AuthenticationMissing
    return identity


@dataclass
class SyncEngine:
    """Uploads sessions, lists remote sessions and materializes images.

    Blocking blob and disk calls run on ``executor`` so that a slow transfer
    only suspends the coroutine waiting on it. The engine holds no locks:
    two concurrent uploads of the same session may interleave their writes.
    """

    blob_store: BlobStore
    image_cache: LocalImageCache
    executor: Executor | None = None

    async def run_io(self, func: Callable[..., _T], *args: object) -> _T:
        """Run a blocking call on the shared I/O executor."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, partial(func, *args))

    async def upload_events(
        self,
        identity: Identity | None,
        session: SessionRecord,
        images: Sequence[Path],
    ) -> AsyncIterator[UploadProgress]:
        """Upload metadata and images, yielding progress between blob writes.

        Raises the first ``SyncError`` encountered. Blobs written before the
        failure stay in place; a retry overwrites them under the same names.
        """
        root = namespace_root(_require_identity(identity))
        session_key = f"{root}/{session.session_id}"
        total = len(images)
        logger.info(
            "Uploading session %s (%d images) to %s",
            session.session_id,
            total,
            session_key,
        )

        yield UploadProgress(5, "Preparing upload...")
        await self.run_io(
            self.blob_store.write_bytes,
            f"{session_key}/{METADATA_FILE}",
            encode_metadata(session),
            "application/json",
        )
        yield UploadProgress(10, "Metadata uploaded")

        for index, image in enumerate(images):
            position = index + 1
            blob_name = remote_image_name(session.session_id, position)
            yield UploadProgress(
                10 + index * 80 // total,
                f"Uploading image {position}/{total}: {blob_name}",
            )
            await self.run_io(
                self.blob_store.write_from_file,
                f"{session_key}/{IMAGES_FOLDER}/{blob_name}",
                Path(image),
                "image/jpeg",
            )
            logger.debug("Uploaded %s as %s", Path(image).name, blob_name)
            yield UploadProgress(
                10 + position * 80 // total, f"Uploaded {position}/{total} images"
            )

        yield UploadProgress(100, "Upload completed")

    async def upload(
        self,
        identity: Identity | None,
        session: SessionRecord,
        images: Sequence[Path],
        on_progress: Callable[[UploadProgress], None] | None = None,
    ) -> bool:
        """Upload a session and report whether every write succeeded."""
        try:
            async for event in self.upload_events(identity, session, images):
                if on_progress is not None:
                    on_progress(event)
        except SyncError:
            logger.exception("Upload failed for session %s", session.session_id)
            return False
        return True

    async def list_remote_sessions(
        self, identity: Identity | None
    ) -> list[RemoteSessionSummary]:
        """Return summaries of all remote sessions, newest first.

        Only metadata blobs are fetched. A folder with missing or unreadable
        metadata is skipped; any failure listing the root yields ``[]``.
        """
        if identity is None:
            logger.warning("Cannot list remote sessions: user not authenticated")
            return []
        root = namespace_root(identity)
        try:
            listing = await self.run_io(self.blob_store.list_children, root)
        except SyncError:
            logger.exception("Failed to list remote sessions under %s", root)
            return []

        logger.info("Found %d remote session folders", len(listing.folders))
        loaded = await asyncio.gather(
            *(self._load_summary(f"{root}/{folder}") for folder in listing.folders)
        )
        summaries = [summary for summary in loaded if summary is not None]
        summaries.sort(key=lambda summary: summary.created_at, reverse=True)
        return summaries

    async def _load_summary(self, folder_key: str) -> RemoteSessionSummary | None:
        try:
            raw = await self.run_io(
                self.blob_store.read_bytes, f"{folder_key}/{METADATA_FILE}"
            )
            record = decode_metadata(raw)
        except SyncError:
            logger.warning(
                "Skipping remote session %s: metadata unavailable",
                folder_key,
                exc_info=True,
            )
            return None
        return RemoteSessionSummary(
            session_id=record.session_id,
            name=record.name,
            age=record.age,
            created_at=record.created_at,
            remote_folder_key=folder_key,
        )

    async def materialize_images(
        self, identity: Identity | None, session_id: str
    ) -> bool:
        """Download a session's remote images into its local directory.

        Existing local files are overwritten, never skipped. Returns False
        when no remote images exist or any transfer fails.
        """
        try:
            downloaded = await self._materialize(identity, session_id)
        except SyncError:
            logger.exception("Failed to download images for session %s", session_id)
            return False
        if not downloaded:
            logger.warning("No remote images found for session %s", session_id)
            return False
        logger.info("Downloaded %d images for session %s", downloaded, session_id)
        return True

    async def _materialize(self, identity: Identity | None, session_id: str) -> int:
        root = namespace_root(_require_identity(identity))
        local_dir = await self.run_io(
            self.image_cache.ensure_session_dir, session_id
        )
        images_key, listing = await self._list_images(f"{root}/{session_id}")
        names = [name for name in listing.blobs if is_image_name(name)]
        for name in names:
            await self.run_io(
                self.blob_store.read_to_file, f"{images_key}/{name}", local_dir / name
            )
        return len(names)

    async def _list_images(self, session_key: str) -> tuple[str, BlobListing]:
        images_key = f"{session_key}/{IMAGES_FOLDER}"
        try:
            return images_key, await self.run_io(
                self.blob_store.list_children, images_key
            )
        except TransportFailure:
            logger.warning(
                "Listing %s failed; looking it up from the session folder",
                images_key,
                exc_info=True,
            )
        parent = await self.run_io(self.blob_store.list_children, session_key)
        folder = next(
            (name for name in parent.folders if name.lower() == IMAGES_FOLDER), None
        )
        if folder is None:
            raise BlobNotFound(f"No {IMAGES_FOLDER} folder under {session_key}")
        images_key = f"{session_key}/{folder}"
        listing = await self.run_io(self.blob_store.list_children, images_key)
        return images_key, listing
