"""Request and response payloads for the HTTP API."""

from pydantic import BaseModel, Field

from photodoc.domain.sessions import RemoteSessionSummary, SessionRecord
from photodoc.domain.uploads import UploadTaskSnapshot


class CreateSessionRequest(BaseModel):
    """Finalize a capture into a new session."""

    name: str
    age: str
    captured_paths: list[str] = Field(default_factory=list)


def session_payload(session: SessionRecord) -> dict[str, object]:
    return {
        "session_id": session.session_id,
        "name": session.name,
        "age": session.age,
        "created_at": session.created_at,
        "uploaded": session.uploaded,
    }


def remote_session_payload(summary: RemoteSessionSummary) -> dict[str, object]:
    return {
        "session_id": summary.session_id,
        "name": summary.name,
        "age": summary.age,
        "created_at": summary.created_at,
        "remote_folder_key": summary.remote_folder_key,
    }


def upload_payload(snapshot: UploadTaskSnapshot) -> dict[str, object]:
    return {
        "session_id": snapshot.session_id,
        "phase": snapshot.phase.value,
        "percent": snapshot.percent,
        "status": snapshot.status,
        "result_message": snapshot.result_message,
        "failure_reason": (
            snapshot.failure_reason.value if snapshot.failure_reason else None
        ),
    }
