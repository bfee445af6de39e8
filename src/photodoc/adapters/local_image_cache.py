"""Local on-disk image cache for sessions."""

import logging
import shutil
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path

from photodoc.domain.errors import LocalIOFailure

logger = logging.getLogger(__name__)

IMAGE_SUFFIXES = frozenset({".jpg", ".jpeg", ".png"})
SESSIONS_DIR = "Sessions"


def is_image_name(name: str) -> bool:
    """Return True for file names with a supported image extension."""
    return Path(name).suffix.lower() in IMAGE_SUFFIXES


@dataclass
class LocalImageCache:
    """Per-session image directories under ``<root>/Sessions/<session_id>``."""

    root: Path

    def session_dir(self, session_id: str) -> Path:
        """Return the directory holding a session's images."""
        return self.root / SESSIONS_DIR / session_id

    def ensure_session_dir(self, session_id: str) -> Path:
        """Create the session directory if needed and return it."""
        directory = self.session_dir(session_id)
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise LocalIOFailure(f"Cannot create {directory}") from exc
        return directory

    def list_images(self, session_id: str) -> list[Path]:
        """Return the session's image files sorted by name."""
        directory = self.session_dir(session_id)
        if not directory.is_dir():
            return []
        return sorted(
            path
            for path in directory.iterdir()
            if path.is_file() and is_image_name(path.name)
        )

    def has_images(self, session_id: str) -> bool:
        """Return True when at least one image exists locally."""
        return bool(self.list_images(session_id))

    def store_captured(
        self,
        session_id: str,
        captured: Sequence[Path],
        now: datetime | None = None,
    ) -> list[Path]:
        """Move captured files into the session directory.

        Files are renamed ``IMG_<yyyyMMdd_HHmmss_SSS>.jpg`` using the capture
        time offset by the image index in milliseconds, which keeps names
        unique and in capture order. Missing source files are skipped.
        """
        directory = self.ensure_session_dir(session_id)
        base = now or datetime.now(tz=UTC)
        stored: list[Path] = []
        for index, source in enumerate(captured):
            source_path = Path(source)
            if not source_path.is_file():
                logger.warning("Captured file %s is missing; skipping", source_path)
                continue
            stamp = base + timedelta(milliseconds=index)
            name = f"IMG_{stamp:%Y%m%d_%H%M%S}_{stamp.microsecond // 1000:03d}.jpg"
            destination = directory / name
            try:
                shutil.move(str(source_path), destination)
            except OSError as exc:
                raise LocalIOFailure(f"Cannot store {source_path}") from exc
            stored.append(destination)
        return stored
