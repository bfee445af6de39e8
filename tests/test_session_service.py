"""Tests for local session lifecycle and the image read path."""

import asyncio
import re
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from photodoc.adapters.local_image_cache import LocalImageCache
from photodoc.domain.sessions import Identity, SessionRecord
from photodoc.services.sessions import SessionService
from photodoc.services.sync import SyncEngine
from tests.conftest import (
    TEST_USER_ID,
    FakeBlobStore,
    InMemorySessionStore,
    write_images,
)

SESSION_ID = "OVH-1700000000000-4231"
REMOTE_IMAGES = f"sessions/{TEST_USER_ID}/{SESSION_ID}/images"


def _seed_remote_images(blob_store: FakeBlobStore, count: int) -> None:
    for index in range(1, count + 1):
        blob_store.blobs[f"{REMOTE_IMAGES}/{SESSION_ID}_img{index}.jpg"] = b"remote"


def test_create_session_moves_captured_images(
    tmp_path: Path, session_service: SessionService
) -> None:
    captured = write_images(tmp_path / "camera", ["temp_1.jpg", "temp_2.jpg"])

    session = session_service.create_session("  Jane Doe ", " 34 ", captured)

    assert re.fullmatch(r"OVH-\d{13}-\d{4}", session.session_id)
    assert session.name == "Jane Doe"
    assert session.age == "34"
    assert session.uploaded is False
    assert session_service.get_session(session.session_id) == session
    stored = session_service.image_cache.list_images(session.session_id)
    assert len(stored) == 2
    assert all(path.name.startswith("IMG_") for path in stored)
    assert not any(path.exists() for path in captured)


@pytest.mark.parametrize(("name", "age"), [("", "34"), ("Jane", "  ")])
def test_create_session_requires_name_and_age(
    session_service: SessionService, name: str, age: str
) -> None:
    with pytest.raises(ValueError):
        session_service.create_session(name, age, [])


def test_list_sessions_searches_id_and_name(session_service: SessionService) -> None:
    session_service.store.upsert(
        SessionRecord(session_id="OVH-1-1000", name="Jane", age="1", created_at=1)
    )
    session_service.store.upsert(
        SessionRecord(session_id="OVH-2-2000", name="Bob", age="2", created_at=2)
    )

    assert [s.session_id for s in session_service.list_sessions()] == [
        "OVH-2-2000",
        "OVH-1-1000",
    ]
    assert [s.name for s in session_service.list_sessions("jan")] == ["Jane"]
    assert [s.name for s in session_service.list_sessions("2000")] == ["Bob"]
    assert len(session_service.list_sessions("   ")) == 2


def test_mark_uploaded_and_delete(session_service: SessionService) -> None:
    session_service.store.upsert(
        SessionRecord(session_id=SESSION_ID, name="Jane", age="34", created_at=1)
    )
    write_images(session_service.image_cache.session_dir(SESSION_ID), ["a.jpg"])

    updated = session_service.mark_uploaded(SESSION_ID)
    session_service.delete_session(SESSION_ID)

    assert updated is not None
    assert updated.uploaded is True
    assert session_service.get_session(SESSION_ID) is None
    assert session_service.image_cache.has_images(SESSION_ID)
    assert session_service.mark_uploaded(SESSION_ID) is None


def test_load_images_fetches_when_directory_is_empty(
    session_service: SessionService, blob_store: FakeBlobStore, identity: Identity
) -> None:
    _seed_remote_images(blob_store, 2)
    session_service.image_cache.ensure_session_dir(SESSION_ID)

    images = asyncio.run(session_service.load_images(identity, SESSION_ID))

    assert [path.name for path in images] == [
        f"{SESSION_ID}_img1.jpg",
        f"{SESSION_ID}_img2.jpg",
    ]
    assert blob_store.lists == [REMOTE_IMAGES]


def test_load_images_fetches_when_directory_is_absent(
    session_service: SessionService, blob_store: FakeBlobStore, identity: Identity
) -> None:
    _seed_remote_images(blob_store, 1)

    images = asyncio.run(session_service.load_images(identity, SESSION_ID))

    assert len(images) == 1


def test_load_images_keeps_partial_local_set(
    session_service: SessionService, blob_store: FakeBlobStore, identity: Identity
) -> None:
    _seed_remote_images(blob_store, 3)
    write_images(
        session_service.image_cache.session_dir(SESSION_ID),
        ["IMG_20231114_221320_000.jpg"],
    )

    images = asyncio.run(session_service.load_images(identity, SESSION_ID))

    assert [path.name for path in images] == ["IMG_20231114_221320_000.jpg"]
    assert blob_store.lists == []
    assert blob_store.reads == []


def test_load_images_returns_empty_when_fetch_fails(
    session_service: SessionService, blob_store: FakeBlobStore
) -> None:
    _seed_remote_images(blob_store, 2)

    assert asyncio.run(session_service.load_images(None, SESSION_ID)) == []


def test_load_images_ignores_non_image_files(
    session_service: SessionService, blob_store: FakeBlobStore, identity: Identity
) -> None:
    _seed_remote_images(blob_store, 1)
    directory = session_service.image_cache.ensure_session_dir(SESSION_ID)
    (directory / "notes.txt").write_text("not an image")

    images = asyncio.run(session_service.load_images(identity, SESSION_ID))

    assert [path.name for path in images] == [f"{SESSION_ID}_img1.jpg"]


@dataclass
class ThreadRecordingCache(LocalImageCache):
    threads: list[str] = field(default_factory=list)

    def list_images(self, session_id: str) -> list[Path]:
        self.threads.append(threading.current_thread().name)
        return super().list_images(session_id)


def test_load_images_scans_directory_on_io_executor(
    tmp_path: Path,
    session_store: InMemorySessionStore,
    blob_store: FakeBlobStore,
    identity: Identity,
) -> None:
    _seed_remote_images(blob_store, 1)
    cache = ThreadRecordingCache(tmp_path / "recorded")
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="photodoc-io")
    service = SessionService(
        store=session_store,
        image_cache=cache,
        sync_engine=SyncEngine(
            blob_store=blob_store, image_cache=cache, executor=executor
        ),
    )

    try:
        images = asyncio.run(service.load_images(identity, SESSION_ID))
    finally:
        executor.shutdown()

    assert len(images) == 1
    assert len(cache.threads) == 2
    assert all(name.startswith("photodoc-io") for name in cache.threads)
