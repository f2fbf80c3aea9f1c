# User value: This file runs the operator's extraction session end to end: configure, load, select, submit, monitor, reset.
import logging
import math
import time
from collections import deque
from typing import Callable, Deque, List, Optional

import config
from schemas.filters import OPERATOR_EQUALS, FilterClause
from schemas.job_contract import (
    JOB_STATUS_COMPLETED,
    JOB_STATUS_FAILED,
    JOB_STATUS_RUNNING,
)
from schemas.requests import SourceConfig
from schemas.responses import (
    CandidateRecord,
    DuplicateJobConflict,
    FieldsResponse,
    Job,
    JobSnapshot,
    JobStatusResponse,
)
from services.errors import ConfigError
from services.filter_compiler import compile_filter
from services.job_monitor import JobMonitor, PollErrorPolicy
from services.record_source import RecordSourceClient
from services.selection import SelectionSet
from services.throughput import ThroughputEstimator, ThroughputSample
from utils.stage_logging import log_stage
from utils.status_machine import is_terminal

logger = logging.getLogger("extractor.orchestrator")

# Oldest notices fall off when nobody drains them.
MAX_NOTICES = 100


def _now_ms() -> float:
    return time.time() * 1000.0


class Notice:
    __slots__ = ("level", "message")

    def __init__(self, level: str, message: str):
        self.level = level
        self.message = message

    def to_dict(self) -> dict:
        return {"level": self.level, "message": self.message}


class ExtractionOrchestrator:
    """Owns all session state for one operator and sequences the extraction flow."""

    def __init__(
        self,
        client: Optional[RecordSourceClient] = None,
        *,
        source: Optional[SourceConfig] = None,
        clock: Callable[[], float] = _now_ms,
        poll_interval_sec: Optional[float] = None,
        sleep=None,
        error_policy: Optional[PollErrorPolicy] = None,
        records_per_page: Optional[int] = None,
    ):
        self.client = client or RecordSourceClient()
        self.source = source or SourceConfig()
        self._clock = clock
        self.records_per_page = max(1, int(records_per_page or config.RECORDS_PER_PAGE))

        self.filters: List[FilterClause] = []
        self.fields = FieldsResponse(success=True)
        self.records: List[CandidateRecord] = []
        self.already_extracted_count = 0
        self.search = ""
        self.current_page = 1
        self.selection = SelectionSet()

        self.job: Optional[Job] = None
        self.estimator = ThroughputEstimator()
        self.notices: Deque[Notice] = deque(maxlen=MAX_NOTICES)

        monitor_kwargs = {"on_update": self._apply_status, "interval_sec": poll_interval_sec, "error_policy": error_policy}
        if sleep is not None:
            monitor_kwargs["sleep"] = sleep
        self.monitor = JobMonitor(self.client.job_status, **monitor_kwargs)

    # -- notices -----------------------------------------------------------

    def _notify(self, level: str, message: str) -> None:
        self.notices.append(Notice(level, message))
        log = logger.warning if level in {"warning", "error"} else logger.info
        log("operator_notice level=%s message=%s", level, message)

    def drain_notices(self) -> List[dict]:
        out = [n.to_dict() for n in self.notices]
        self.notices.clear()
        return out

    # -- configuration and filters -----------------------------------------

    def configure(self, source: SourceConfig) -> None:
        self.source = source

    def add_filter(self) -> FilterClause:
        default_field = self.fields.text_fields[0] if self.fields.text_fields else ""
        clause = FilterClause(field=default_field, operator=OPERATOR_EQUALS, value="")
        self.filters.append(clause)
        return clause

    def update_filter(self, clause_id: str, **changes) -> FilterClause:
        for index, clause in enumerate(self.filters):
            if clause.id == clause_id:
                allowed = {k: v for k, v in changes.items() if k in {"field", "operator", "value"}}
                self.filters[index] = clause.model_copy(update=allowed)
                return self.filters[index]
        raise KeyError(clause_id)

    def remove_filter(self, clause_id: str) -> None:
        self.filters = [f for f in self.filters if f.id != clause_id]

    def compiled_filter(self) -> str:
        return compile_filter(self.filters)

    # -- record source ------------------------------------------------------

    async def fetch_fields(self) -> FieldsResponse:
        self.fields = await self.client.list_fields(self.source)
        self._notify("success", f"Loaded {self.fields.total_fields} fields")
        return self.fields

    async def load_records(self) -> List[CandidateRecord]:
        out = await self.client.list_candidates(self.source, self.compiled_filter())
        self.records = list(out.sample_records)
        self.already_extracted_count = out.already_extracted_count
        self.selection.clear()
        self.current_page = 1
        if out.images_stored > 0:
            self._notify("success", f"Loaded {len(self.records)} records ({out.images_stored} images pre-stored)")
        else:
            self._notify("success", f"Loaded {len(self.records)} records")
        return self.records

    # -- visible view and selection -----------------------------------------

    def set_search(self, query: str) -> None:
        self.search = query or ""
        self.current_page = 1

    def visible_records(self) -> List[CandidateRecord]:
        needle = self.search.strip().lower()
        if not needle:
            return list(self.records)
        return [r for r in self.records if needle in (r.display_name or "").lower()]

    def visible_ids(self) -> List[str]:
        return [r.record_id for r in self.visible_records()]

    def total_pages(self) -> int:
        return math.ceil(len(self.visible_records()) / self.records_per_page)

    def page_records(self, page: Optional[int] = None) -> List[CandidateRecord]:
        if page is not None:
            self.current_page = min(max(1, int(page)), max(1, self.total_pages()))
        start = (self.current_page - 1) * self.records_per_page
        return self.visible_records()[start:start + self.records_per_page]

    def toggle(self, record_id: str) -> bool:
        return self.selection.toggle(record_id)

    def select_all(self) -> None:
        self.selection.select_all(self.visible_ids())

    def select_first_n(self, n: int) -> None:
        self.selection.select_first_n(self.visible_ids(), n)

    def clear_selection(self) -> None:
        self.selection.clear()

    # -- job lifecycle ------------------------------------------------------

    async def start_extraction(self) -> Job:
        if len(self.selection) == 0:
            raise ConfigError("Select at least one record to process")

        out = await self.client.start_job(self.source, self.compiled_filter(), self.selection.ids())
        if isinstance(out, DuplicateJobConflict):
            return self.adopt_job(out.active_job_id, message=out.message)

        self.job = Job(job_id=out.job_id)
        self.estimator.reset(ThroughputSample(self._clock(), 0))
        self._notify("success", out.message or f"Extraction started for {len(self.selection)} records")
        log_stage(job_id=out.job_id, stage="JOB_SUBMIT", event="STARTED", selected=len(self.selection))
        self.monitor.start(out.job_id)
        return self.job

    def adopt_job(self, job_id: str, *, message: str = "") -> Job:
        """Resume monitoring a job the backend reports as already running."""
        self.job = Job(job_id=job_id, adopted=True)
        # Adopted jobs may already have progress; the first snapshot becomes the baseline.
        self.estimator.reset(None)
        self._notify("info", message or f"An equivalent job is already running; tracking {job_id}")
        log_stage(job_id=job_id, stage="JOB_SUBMIT", event="ADOPTED", reason=message or "duplicate_job")
        self.monitor.start(job_id)
        return self.job

    def _apply_status(self, job_id: str, status: JobStatusResponse) -> None:
        job = self.job
        if job is None or job.job_id != job_id:
            log_stage(job_id=job_id, stage="JOB_POLL", event="DISCARDED", reason="job_replaced")
            return

        processed = status.progress.processed_records
        terminal = is_terminal(status.status)
        if processed < job.progress.processed_records:
            log_stage(
                job_id=job_id,
                stage="JOB_POLL",
                event="DISCARDED",
                reason="progress_regressed",
                processed_records=processed,
                last_processed_records=job.progress.processed_records,
                status=status.status,
            )
            # A terminal status still ends the job; only its progress is stale.
            if not terminal:
                return
        else:
            job.progress = status.progress
            self.estimator.observe(processed, self._clock())

        job.cost = status.cost
        if status.status:
            job.status = status.status

        if job.status == JOB_STATUS_COMPLETED:
            self._notify("success", "Extraction completed successfully")
        elif job.status == JOB_STATUS_FAILED:
            self._notify("error", "Extraction failed")

    def snapshot(self) -> JobSnapshot:
        job = self.job
        if job is None:
            return JobSnapshot(monitor_state=self.monitor.state)
        return JobSnapshot(
            job_id=job.job_id,
            status=job.status,
            monitor_state=self.monitor.state,
            progress=job.progress,
            total_cost_usd=job.cost.total_cost_usd,
            speed_per_minute=self.estimator.speed_per_minute,
            eta_minutes=(
                self.estimator.eta_minutes(job.progress.total_records, job.progress.processed_records)
                if job.status == JOB_STATUS_RUNNING
                else None
            ),
            adopted=job.adopted,
        )

    async def reset(self, reload: bool = True) -> None:
        """Acknowledge the finished job and start over."""
        self.monitor.reset()
        self.job = None
        self.estimator.reset(None)
        if reload and self.source.app_link_name and self.source.report_link_name:
            await self.load_records()

    async def aclose(self) -> None:
        self.monitor.reset()
        await self.client.aclose()
