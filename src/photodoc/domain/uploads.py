"""Domain models for background upload tasks."""

from dataclasses import dataclass
from enum import Enum


class TaskPhase(str, Enum):
    """Lifecycle phase of a background upload."""

    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class FailureReason(str, Enum):
    """Machine-usable reasons an upload task can fail with."""

    AUTH_MISSING = "auth_missing"
    SESSION_NOT_FOUND = "session_not_found"
    NO_IMAGES = "no_images"
    UPLOAD_FAILED = "upload_failed"
    CANCELLED = "cancelled"
    UNEXPECTED_ERROR = "unexpected_error"


@dataclass(frozen=True)
class UploadTaskSnapshot:
    """Point-in-time view of an upload task."""

    session_id: str
    phase: TaskPhase
    percent: int
    status: str
    result_message: str | None = None
    failure_reason: FailureReason | None = None

    @property
    def is_terminal(self) -> bool:
        """Return True once the task succeeded or failed."""
        return self.phase in {TaskPhase.SUCCEEDED, TaskPhase.FAILED}
