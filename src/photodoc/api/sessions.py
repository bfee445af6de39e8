"""Session, upload and cloud listing endpoints."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from photodoc.api.models import (
    CreateSessionRequest,
    remote_session_payload,
    session_payload,
    upload_payload,
)
from photodoc.domain.errors import LocalIOFailure
from photodoc.domain.sessions import Identity  # noqa: TC001

if TYPE_CHECKING:
    from photodoc.containers import AppContainer

router = APIRouter(tags=["sessions"])


def _container(request: Request) -> AppContainer:
    return request.app.state.container


def get_identity(
    request: Request, authorization: str | None = Header(default=None)
) -> Identity | None:
    """Resolve the bearer token, if any; operations report missing auth."""
    if not authorization or not authorization.lower().startswith("bearer "):
        return None
    token = authorization[len("bearer ") :].strip()
    return _container(request).identity_provider.resolve(token)


async def _require_session(container: AppContainer, session_id: str) -> None:
    service = container.session_service
    if await container.sync_engine.run_io(service.get_session, session_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)


@router.get("/sessions")
async def list_sessions(request: Request, q: str | None = None) -> dict[str, object]:
    """Return local sessions, newest first, optionally filtered."""
    container = _container(request)
    sessions = await container.sync_engine.run_io(
        container.session_service.list_sessions, q
    )
    return {"sessions": [session_payload(session) for session in sessions]}


@router.post("/sessions", status_code=status.HTTP_201_CREATED)
async def create_session(
    payload: CreateSessionRequest, request: Request
) -> dict[str, object]:
    """Store captured images and create the session record."""
    container = _container(request)
    try:
        session = await container.sync_engine.run_io(
            container.session_service.create_session,
            payload.name,
            payload.age,
            [Path(path) for path in payload.captured_paths],
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except LocalIOFailure as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Could not save session images",
        ) from exc
    return session_payload(session)


@router.get("/sessions/{session_id}")
async def get_session(session_id: str, request: Request) -> dict[str, object]:
    container = _container(request)
    session = await container.sync_engine.run_io(
        container.session_service.get_session, session_id
    )
    if session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    return session_payload(session)


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(session_id: str, request: Request) -> None:
    """Delete the session record; image files stay on disk."""
    container = _container(request)
    await container.sync_engine.run_io(
        container.session_service.delete_session, session_id
    )


@router.get("/sessions/{session_id}/images")
async def session_images(
    session_id: str,
    request: Request,
    identity: Identity | None = Depends(get_identity),
) -> dict[str, object]:
    """Return the session's local images, fetching them from cloud if needed."""
    images = await _container(request).session_service.load_images(
        identity, session_id
    )
    return {
        "session_id": session_id,
        "status": "ok" if images else "no_images",
        "images": [image.name for image in images],
    }


@router.post("/sessions/{session_id}/upload", status_code=status.HTTP_202_ACCEPTED)
async def start_upload(
    session_id: str,
    request: Request,
    identity: Identity | None = Depends(get_identity),
) -> dict[str, object]:
    """Queue a background upload for the session."""
    container = _container(request)
    await _require_session(container, session_id)
    task = container.upload_manager.enqueue(identity, session_id)
    return upload_payload(task.snapshot())


@router.get("/sessions/{session_id}/upload")
async def upload_status(session_id: str, request: Request) -> dict[str, object]:
    task = _container(request).upload_manager.get(session_id)
    if task is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    return upload_payload(task.snapshot())


@router.delete("/sessions/{session_id}/upload")
async def cancel_upload(session_id: str, request: Request) -> dict[str, object]:
    """Cancel the session's upload before its next blob transfer."""
    task = _container(request).upload_manager.cancel(session_id)
    if task is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    return upload_payload(task.snapshot())


@router.get("/cloud/sessions")
async def list_cloud_sessions(
    request: Request, identity: Identity | None = Depends(get_identity)
) -> dict[str, object]:
    """Return metadata for every session uploaded by the caller."""
    summaries = await _container(request).sync_engine.list_remote_sessions(identity)
    return {"sessions": [remote_session_payload(summary) for summary in summaries]}
