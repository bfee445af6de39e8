"""Supabase Storage-backed blob store."""

import logging
from dataclasses import dataclass
from pathlib import Path

from supabase import Client

from photodoc.domain.errors import BlobNotFound, LocalIOFailure, TransportFailure
from photodoc.services.sync import BlobListing, BlobStore

logger = logging.getLogger(__name__)

_PAGE_SIZE = 100


@dataclass
class SupabaseBlobStore(BlobStore):
    """Blob store on a Supabase Storage bucket.

    Storage has no real folders: listing a prefix returns objects plus
    folder entries, which are the ones without an object id.
    """

    client: Client
    bucket: str

    def _bucket(self):  # type: ignore[no-untyped-def]
        return self.client.storage.from_(self.bucket)

    def write_bytes(self, path: str, data: bytes, content_type: str) -> None:
        """Create or overwrite a blob."""
        try:
            self._bucket().upload(
                path, data, {"content-type": content_type, "upsert": "true"}
            )
        except Exception as exc:
            raise _transport_error("upload", path, exc) from exc

    def write_from_file(self, path: str, local_file: Path, content_type: str) -> None:
        """Upload a local file's content."""
        try:
            data = local_file.read_bytes()
        except OSError as exc:
            raise LocalIOFailure(f"Cannot read {local_file}") from exc
        self.write_bytes(path, data, content_type)

    def read_bytes(self, path: str) -> bytes:
        """Download a blob's content."""
        try:
            return self._bucket().download(path)
        except Exception as exc:
            raise _transport_error("download", path, exc) from exc

    def read_to_file(self, path: str, local_file: Path) -> None:
        """Download a blob into a local file, replacing it."""
        data = self.read_bytes(path)
        try:
            local_file.write_bytes(data)
        except OSError as exc:
            raise LocalIOFailure(f"Cannot write {local_file}") from exc

    def list_children(self, prefix: str) -> BlobListing:
        """List direct children of a prefix across all result pages."""
        folders: list[str] = []
        blobs: list[str] = []
        offset = 0
        while True:
            try:
                page = self._bucket().list(
                    prefix,
                    {
                        "limit": _PAGE_SIZE,
                        "offset": offset,
                        "sortBy": {"column": "name", "order": "asc"},
                    },
                )
            except Exception as exc:
                raise _transport_error("list", prefix, exc) from exc
            for entry in page or []:
                name = entry.get("name")
                if not name:
                    continue
                if entry.get("id") is None:
                    folders.append(name)
                else:
                    blobs.append(name)
            if not page or len(page) < _PAGE_SIZE:
                break
            offset += _PAGE_SIZE
        return BlobListing(folders=folders, blobs=blobs)


def _transport_error(action: str, path: str, exc: Exception) -> TransportFailure:
    status = str(getattr(exc, "status", "") or getattr(exc, "status_code", ""))
    if status == "404" or "not found" in str(exc).lower():
        return BlobNotFound(f"{path} not found")
    logger.debug("Storage %s failed for %s: %s", action, path, exc)
    return TransportFailure(f"Storage {action} failed for {path}")
