"""Domain models for photo-documentation sessions."""

import json
import random
import time
from dataclasses import dataclass

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)

from photodoc.domain.errors import MetadataError


@dataclass(frozen=True)
class SessionRecord:
    """Represents a locally stored photo-documentation session."""

    session_id: str
    name: str
    age: str
    created_at: int
    uploaded: bool = False


@dataclass(frozen=True)
class RemoteSessionSummary:
    """Read-only view of a session parsed from its remote metadata."""

    session_id: str
    name: str
    age: str
    created_at: int
    remote_folder_key: str


@dataclass(frozen=True)
class Identity:
    """Authenticated caller whose namespace the sync operations use."""

    user_id: str
    access_token: str


@dataclass(frozen=True)
class UploadProgress:
    """Progress event emitted while a session is uploaded."""

    percent: int
    message: str


def new_session_id(prefix: str = "OVH", now_ms: int | None = None) -> str:
    """Generate a client-side session id like OVH-1700000000000-4231."""
    timestamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{prefix}-{timestamp}-{random.randint(1000, 9999)}"  # noqa: S311


def encode_metadata(session: SessionRecord) -> bytes:
    """Serialize a session to its canonical metadata.json payload."""
    payload = {
        "sessionId": session.session_id,
        "name": session.name,
        "age": session.age,
        "createdAt": session.created_at,
        "uploaded": session.uploaded,
    }
    return json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")


class _MetadataDocument(BaseModel):
    """Wire shape of metadata.json; older clients wrote timestamp/isUploaded."""

    model_config = ConfigDict(extra="ignore")

    session_id: str = Field(validation_alias="sessionId", min_length=1)
    name: str
    age: str = ""
    created_at: int = Field(validation_alias=AliasChoices("createdAt", "timestamp"))
    uploaded: bool = Field(
        default=False, validation_alias=AliasChoices("uploaded", "isUploaded")
    )

    @field_validator("age", mode="before")
    @classmethod
    def age_as_text(cls, value: object) -> object:
        if value is None:
            return ""
        if isinstance(value, int | float) and not isinstance(value, bool):
            return str(value)
        return value


def decode_metadata(raw: bytes) -> SessionRecord:
    """Parse a metadata.json payload, accepting legacy field names."""
    try:
        document = _MetadataDocument.model_validate_json(raw)
    except ValidationError as exc:
        raise MetadataError(f"Invalid session metadata: {exc}") from exc
    return SessionRecord(
        session_id=document.session_id,
        name=document.name,
        age=document.age,
        created_at=document.created_at,
        uploaded=document.uploaded,
    )
