"""Background upload tasks that outlive the request that started them."""

import asyncio
import logging
from collections.abc import Callable
from contextlib import aclosing
from dataclasses import dataclass, field

from photodoc.domain.errors import AuthenticationMissing, SyncError
from photodoc.domain.sessions import Identity, UploadProgress
from photodoc.domain.uploads import FailureReason, TaskPhase, UploadTaskSnapshot
from photodoc.services.sessions import SessionService

logger = logging.getLogger(__name__)

TaskListener = Callable[[UploadTaskSnapshot], None]

_FAILURE_STATUS = {
    FailureReason.AUTH_MISSING: "Not signed in",
    FailureReason.SESSION_NOT_FOUND: "Session not found",
    FailureReason.NO_IMAGES: "No images found for session",
    FailureReason.UPLOAD_FAILED: "Upload failed",
    FailureReason.CANCELLED: "Upload cancelled",
    FailureReason.UNEXPECTED_ERROR: "Upload failed",
}


@dataclass
class UploadTask:
    """Observable state of one session upload."""

    session_id: str
    phase: TaskPhase = TaskPhase.QUEUED
    percent: int = 0
    status: str = "Waiting to upload..."
    result_message: str | None = None
    failure_reason: FailureReason | None = None
    cancel_requested: bool = False
    _listeners: list[TaskListener] = field(default_factory=list, repr=False)

    def snapshot(self) -> UploadTaskSnapshot:
        return UploadTaskSnapshot(
            session_id=self.session_id,
            phase=self.phase,
            percent=self.percent,
            status=self.status,
            result_message=self.result_message,
            failure_reason=self.failure_reason,
        )

    @property
    def is_active(self) -> bool:
        return not self.snapshot().is_terminal

    def subscribe(self, listener: TaskListener) -> Callable[[], None]:
        """Register a listener called with a snapshot on every change."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception(
                    "Upload listener failed for session %s", self.session_id
                )

    def _start(self) -> None:
        self.phase = TaskPhase.RUNNING
        self.percent = 0
        self.status = "Starting upload..."
        self._publish()

    def _progress(self, event: UploadProgress) -> None:
        self.percent = max(self.percent, event.percent)
        self.status = event.message
        self._publish()

    def _succeed(self, message: str) -> None:
        self.phase = TaskPhase.SUCCEEDED
        self.percent = 100
        self.status = "Upload completed"
        self.result_message = message
        self._publish()

    def _fail(self, reason: FailureReason) -> None:
        self.phase = TaskPhase.FAILED
        self.status = _FAILURE_STATUS[reason]
        self.failure_reason = reason
        self._publish()


@dataclass
class UploadTaskManager:
    """Schedules upload tasks on the running event loop.

    At most one active task exists per session id; enqueueing a session that
    is still queued or running returns its current task. Only the newest
    ``max_finished`` finished tasks are kept for status queries. ``enqueue``
    must be called from a coroutine running on the loop that will own the
    task.
    """

    session_service: SessionService
    max_concurrent: int = 2
    max_finished: int = 100
    _tasks: dict[str, UploadTask] = field(default_factory=dict, init=False)
    _runners: dict[str, asyncio.Task[None]] = field(default_factory=dict, init=False)
    _slots: asyncio.Semaphore = field(init=False)

    def __post_init__(self) -> None:
        self._slots = asyncio.Semaphore(self.max_concurrent)

    def enqueue(self, identity: Identity | None, session_id: str) -> UploadTask:
        """Start uploading a session unless an upload is already active."""
        existing = self._tasks.get(session_id)
        if existing is not None and existing.is_active:
            logger.info("Upload for session %s already in progress", session_id)
            return existing

        task = UploadTask(session_id=session_id)
        self._tasks.pop(session_id, None)
        self._tasks[session_id] = task
        runner = asyncio.create_task(
            self._run(task, identity), name=f"upload-{session_id}"
        )
        self._runners[session_id] = runner
        runner.add_done_callback(lambda _: self._forget_runner(session_id, runner))
        return task

    def get(self, session_id: str) -> UploadTask | None:
        return self._tasks.get(session_id)

    def cancel(self, session_id: str) -> UploadTask | None:
        """Request cancellation; takes effect before the next blob operation."""
        task = self._tasks.get(session_id)
        if task is None or not task.is_active:
            return task
        task.cancel_requested = True
        if task.phase is TaskPhase.QUEUED:
            runner = self._runners.get(session_id)
            if runner is not None:
                runner.cancel()
            task._fail(FailureReason.CANCELLED)
        return task

    async def wait(self, session_id: str) -> UploadTaskSnapshot | None:
        """Wait for a session's current task to finish and return its state."""
        runner = self._runners.get(session_id)
        if runner is not None:
            await asyncio.gather(runner, return_exceptions=True)
        task = self._tasks.get(session_id)
        return task.snapshot() if task else None

    async def shutdown(self) -> None:
        """Cancel all running uploads and wait for them to stop."""
        runners = list(self._runners.values())
        for runner in runners:
            runner.cancel()
        await asyncio.gather(*runners, return_exceptions=True)

    def _forget_runner(self, session_id: str, runner: asyncio.Task[None]) -> None:
        if self._runners.get(session_id) is runner:
            del self._runners[session_id]
        self._evict_finished()

    def _evict_finished(self) -> None:
        finished = [key for key, task in self._tasks.items() if not task.is_active]
        for key in finished[: max(len(finished) - self.max_finished, 0)]:
            del self._tasks[key]

    async def _run(self, task: UploadTask, identity: Identity | None) -> None:
        try:
            async with self._slots:
                await self._execute(task, identity)
        except asyncio.CancelledError:
            if task.is_active:
                task._fail(FailureReason.CANCELLED)
            raise
        except Exception:
            logger.exception("Unexpected error uploading session %s", task.session_id)
            task._fail(FailureReason.UNEXPECTED_ERROR)

    async def _execute(self, task: UploadTask, identity: Identity | None) -> None:
        if task.cancel_requested:
            task._fail(FailureReason.CANCELLED)
            return
        task._start()
        if identity is None:
            logger.error("Cannot upload session %s: not authenticated", task.session_id)
            task._fail(FailureReason.AUTH_MISSING)
            return
        service = self.session_service
        run_io = service.sync_engine.run_io
        session = await run_io(service.get_session, task.session_id)
        if session is None:
            task._fail(FailureReason.SESSION_NOT_FOUND)
            return
        images = await run_io(service.image_cache.list_images, task.session_id)
        if not images:
            task._fail(FailureReason.NO_IMAGES)
            return

        try:
            async with aclosing(
                service.sync_engine.upload_events(identity, session, images)
            ) as events:
                async for event in events:
                    task._progress(event)
                    if task.cancel_requested:
                        logger.info("Upload of %s cancelled", task.session_id)
                        task._fail(FailureReason.CANCELLED)
                        return
        except AuthenticationMissing:
            task._fail(FailureReason.AUTH_MISSING)
            return
        except SyncError:
            logger.exception("Upload failed for session %s", task.session_id)
            task._fail(FailureReason.UPLOAD_FAILED)
            return

        await run_io(service.mark_uploaded, task.session_id)
        task._succeed("Session uploaded successfully")
