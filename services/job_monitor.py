# User value: This file tracks a running extraction job every second so operators see live progress until it ends.
import asyncio
import logging
from typing import Awaitable, Callable, Optional

import config
from schemas.job_contract import MONITOR_IDLE, MONITOR_POLLING, MONITOR_STOPPED
from schemas.responses import JobStatusResponse
from services.errors import RemoteError, TransportError
from utils.metrics import incr
from utils.stage_logging import log_stage
from utils.status_machine import check_transition, is_terminal

logger = logging.getLogger("extractor.job_monitor")

FetchStatus = Callable[[str], Awaitable[JobStatusResponse]]
OnUpdate = Callable[[str, JobStatusResponse], None]


class PollErrorPolicy:
    """Decides whether a failed poll tick lets the loop continue.

    Transport and remote failures on a single tick are logged and retried on
    the next tick. With ``max_consecutive_failures`` set, the loop stops once
    that many ticks in a row have failed.
    """

    retry_on = (TransportError, RemoteError)

    def __init__(self, max_consecutive_failures: Optional[int] = None):
        self.max_consecutive_failures = max_consecutive_failures
        self.consecutive_failures = 0

    def record_success(self) -> None:
        self.consecutive_failures = 0

    def should_continue(self, job_id: str, exc: Exception) -> bool:
        if not isinstance(exc, self.retry_on):
            return False
        self.consecutive_failures += 1
        limit = self.max_consecutive_failures
        if limit is not None and self.consecutive_failures >= limit:
            log_stage(
                job_id=job_id,
                stage="JOB_POLL",
                event="FAILED",
                error=f"{exc.__class__.__name__}: {exc}",
                consecutive_failures=self.consecutive_failures,
            )
            return False
        log_stage(
            job_id=job_id,
            stage="JOB_POLL",
            event="RETRY",
            reason=f"{exc.__class__.__name__}: {exc}",
            consecutive_failures=self.consecutive_failures,
        )
        return True


class PollHandle:
    """Owned cancellation handle for one poll loop. ``cancel()`` is idempotent."""

    def __init__(self, monitor: "JobMonitor", job_id: str):
        self._monitor = monitor
        self.job_id = job_id
        self._task: Optional[asyncio.Task] = None
        self._cancelled = False

    @property
    def active(self) -> bool:
        return not self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        task = self._task
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()
        self._monitor._handle_finished(self)

    async def wait(self) -> None:
        if self._task is None:
            return
        try:
            await asyncio.shield(self._task)
        except asyncio.CancelledError:
            if not self._task.cancelled():
                raise


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class JobMonitor:
    """Polls job status on a fixed cadence until the job reaches a terminal status.

    States: ``idle`` -> ``polling`` -> ``stopped``. Starting a new loop cancels
    the previous one first. Snapshots that arrive after the loop stopped are
    discarded rather than applied.
    """

    def __init__(
        self,
        fetch_status: FetchStatus,
        *,
        on_update: Optional[OnUpdate] = None,
        interval_sec: Optional[float] = None,
        error_policy: Optional[PollErrorPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._fetch_status = fetch_status
        self._on_update = on_update
        self.interval_sec = config.POLL_INTERVAL_SEC if interval_sec is None else float(interval_sec)
        self.error_policy = error_policy or PollErrorPolicy()
        self._sleep = sleep

        self.state = MONITOR_IDLE
        self.job_id: Optional[str] = None
        self.last_status: Optional[str] = None
        self.ticks = 0
        self._handle: Optional[PollHandle] = None

    @property
    def handle(self) -> Optional[PollHandle]:
        return self._handle

    def start(self, job_id: str) -> PollHandle:
        """Begin polling ``job_id``; must be called from a running event loop."""
        self.stop()
        self.error_policy.record_success()

        handle = PollHandle(self, job_id)
        self._handle = handle
        self.job_id = job_id
        self.last_status = None
        self.ticks = 0
        self.state = MONITOR_POLLING

        handle._task = asyncio.get_running_loop().create_task(self._run(handle))
        handle._task.add_done_callback(lambda task: self._on_task_done(handle, task))
        log_stage(job_id=job_id, stage="JOB_POLL", event="STARTED", interval_sec=self.interval_sec)
        return handle

    def stop(self) -> None:
        if self._handle is not None:
            self._handle.cancel()

    def reset(self) -> None:
        self.stop()
        self._handle = None
        self.job_id = None
        self.last_status = None
        self.ticks = 0
        self.state = MONITOR_IDLE

    def _is_current(self, handle: PollHandle) -> bool:
        return handle is self._handle and handle.active and self.state == MONITOR_POLLING

    def _handle_finished(self, handle: PollHandle) -> None:
        if handle is self._handle and self.state == MONITOR_POLLING:
            self.state = MONITOR_STOPPED
            log_stage(
                job_id=handle.job_id,
                stage="JOB_POLL",
                event="STOPPED",
                ticks=self.ticks,
                status=self.last_status,
            )

    def _on_task_done(self, handle: PollHandle, task: asyncio.Task) -> None:
        if not task.cancelled() and task.exception() is not None:
            exc = task.exception()
            logger.error(
                "job_poll_loop_crashed job_id=%s error=%s: %s",
                handle.job_id,
                exc.__class__.__name__,
                exc,
                exc_info=exc,
            )
        handle.cancel()

    async def _run(self, handle: PollHandle) -> None:
        while self._is_current(handle):
            await self._sleep(self.interval_sec)
            if not self._is_current(handle):
                break
            await self.poll_once(handle)

    async def poll_once(self, handle: PollHandle) -> Optional[JobStatusResponse]:
        job_id = handle.job_id
        self.ticks += 1
        incr("extractor_job_poll_ticks_total")

        try:
            status = await self._fetch_status(job_id)
        except Exception as exc:
            incr("extractor_job_poll_failures_total", error=exc.__class__.__name__)
            if self.error_policy.should_continue(job_id, exc):
                return None
            handle.cancel()
            if isinstance(exc, self.error_policy.retry_on):
                return None
            raise

        self.error_policy.record_success()

        if not self._is_current(handle):
            log_stage(job_id=job_id, stage="JOB_POLL", event="DISCARDED", reason="monitor_not_polling")
            return None

        if not check_transition(job_id=job_id, current=self.last_status, target=status.status, context="job_poll"):
            return None

        if status.status:
            self.last_status = status.status
        if self._on_update is not None:
            self._on_update(job_id, status)

        if is_terminal(status.status):
            log_stage(
                job_id=job_id,
                stage="JOB_POLL",
                event="COMPLETED",
                status=status.status,
                processed_records=status.progress.processed_records,
                total_records=status.progress.total_records,
            )
            handle.cancel()
        return status
