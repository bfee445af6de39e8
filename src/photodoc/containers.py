"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from supabase import create_client

from photodoc.adapters.local_image_cache import LocalImageCache
from photodoc.adapters.sqlite_session_store import SqliteSessionStore
from photodoc.adapters.supabase_blob_store import SupabaseBlobStore
from photodoc.adapters.supabase_identity_provider import (
    IdentityProvider,
    SupabaseIdentityProvider,
)
from photodoc.config import Settings
from photodoc.services.sessions import SessionService
from photodoc.services.sync import SyncEngine
from photodoc.services.uploads import UploadTaskManager


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    identity_provider: IdentityProvider
    sync_engine: SyncEngine
    session_service: SessionService
    upload_manager: UploadTaskManager
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_key
    )
    executor = ThreadPoolExecutor(
        max_workers=resolved_settings.io_workers, thread_name_prefix="photodoc-io"
    )
    image_cache = LocalImageCache(resolved_settings.local_root)
    store = SqliteSessionStore(resolved_settings.resolved_database_path())
    sync_engine = SyncEngine(
        blob_store=SupabaseBlobStore(supabase_client, resolved_settings.storage_bucket),
        image_cache=image_cache,
        executor=executor,
    )
    session_service = SessionService(
        store=store,
        image_cache=image_cache,
        sync_engine=sync_engine,
        session_id_prefix=resolved_settings.session_id_prefix,
    )
    upload_manager = UploadTaskManager(
        session_service=session_service,
        max_concurrent=resolved_settings.max_concurrent_uploads,
    )

    async def close_resources() -> None:
        await upload_manager.shutdown()
        executor.shutdown(wait=False, cancel_futures=True)

    return AppContainer(
        settings=resolved_settings,
        identity_provider=SupabaseIdentityProvider(supabase_client),
        sync_engine=sync_engine,
        session_service=session_service,
        upload_manager=upload_manager,
        close_resources=close_resources,
    )
