"""Tests for container wiring."""

import asyncio

from photodoc.config import Settings
from photodoc.containers import build_container


def test_build_container_creates_services(settings: Settings) -> None:
    container = build_container(settings)

    assert container.session_service.sync_engine is container.sync_engine
    assert container.upload_manager.session_service is container.session_service
    assert settings.resolved_database_path().exists()
    asyncio.run(container.close_resources())
