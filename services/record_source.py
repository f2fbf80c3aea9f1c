# User value: This file talks to the extraction backend so operators can list, start and track extraction jobs.
import json
import logging
import time
from typing import Iterable, Optional, Union

import httpx
from pydantic import BaseModel, ValidationError

import config
from schemas.job_contract import (
    DUPLICATE_JOB_STATUS_CODE,
    FETCH_FIELDS_PATH,
    FORM_APP_LINK_NAME,
    FORM_ATTACHMENT_A_FIELD,
    FORM_ATTACHMENT_B_FIELD,
    FORM_FILTER_CRITERIA,
    FORM_REPORT_LINK_NAME,
    FORM_SELECTED_RECORD_IDS,
    FORM_STORE_IMAGES,
    PREVIEW_PATH,
    START_PATH,
    STATUS_PATH,
)
from schemas.requests import SourceConfig
from schemas.responses import (
    CandidatesResponse,
    DuplicateJobConflict,
    FieldsResponse,
    JobStarted,
    JobStatusResponse,
)
from services.errors import ConfigError, RemoteError, TransportError
from services.feature_flags import is_prestore_images_enabled
from utils.metrics import incr, observe_ms
from utils.request_id import REQUEST_ID_HEADER, outbound_request_id

logger = logging.getLogger("extractor.record_source")


def _require_source(source: Optional[SourceConfig]) -> SourceConfig:
    if source is None:
        raise ConfigError("Source configuration is required")
    missing = [
        name
        for name in (FORM_APP_LINK_NAME, FORM_REPORT_LINK_NAME)
        if not str(getattr(source, name, "") or "").strip()
    ]
    if missing:
        raise ConfigError(f"Missing source identifiers: {', '.join(missing)}")
    return source


def _source_form(source: SourceConfig, compiled_filter: str = "") -> dict:
    form = {
        FORM_APP_LINK_NAME: source.app_link_name.strip(),
        FORM_REPORT_LINK_NAME: source.report_link_name.strip(),
    }
    if source.attachment_a_field.strip():
        form[FORM_ATTACHMENT_A_FIELD] = source.attachment_a_field.strip()
    if source.attachment_b_field.strip():
        form[FORM_ATTACHMENT_B_FIELD] = source.attachment_b_field.strip()
    if compiled_filter:
        form[FORM_FILTER_CRITERIA] = compiled_filter
    return form


def _json_body(response: httpx.Response, operation: str) -> dict:
    try:
        body = response.json()
    except ValueError as exc:
        raise RemoteError(
            f"{operation}: backend returned a non-JSON body",
            status_code=response.status_code,
        ) from exc
    if not isinstance(body, dict):
        raise RemoteError(f"{operation}: backend returned a non-object body", status_code=response.status_code)
    return body


def _parse(model: type[BaseModel], body: dict, operation: str, status_code: int):
    try:
        parsed = model.model_validate(body)
    except ValidationError as exc:
        raise RemoteError(f"{operation}: malformed payload ({exc.error_count()} errors)", status_code=status_code) from exc
    if not getattr(parsed, "success", True):
        raise RemoteError(f"{operation}: {getattr(parsed, 'error', None) or 'backend reported failure'}", status_code=status_code)
    return parsed


class RecordSourceClient:
    """Request/response wrapper around the extraction backend. No caching between calls."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = (base_url or config.EXTRACTOR_API_URL).rstrip("/")
        self._client = http_client or httpx.AsyncClient(
            timeout=timeout if timeout is not None else config.REQUEST_TIMEOUT_SEC,
        )
        self._owns_client = http_client is None

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(self, method: str, path: str, *, operation: str, data: Optional[dict] = None) -> httpx.Response:
        url = f"{self.base_url}{path}"
        request_id = outbound_request_id()
        started = time.perf_counter()
        outcome = "error"
        try:
            kwargs = {"data": data} if data is not None else {}
            response = await self._client.request(
                method,
                url,
                headers={REQUEST_ID_HEADER: request_id},
                **kwargs,
            )
            outcome = f"{response.status_code // 100}xx"
            return response
        except httpx.HTTPError as exc:
            logger.warning(
                "backend_request_failed operation=%s url=%s request_id=%s error=%s: %s",
                operation,
                url,
                request_id,
                exc.__class__.__name__,
                exc,
            )
            raise TransportError(f"{operation}: {exc.__class__.__name__}: {exc}") from exc
        finally:
            duration_ms = (time.perf_counter() - started) * 1000.0
            incr("extractor_backend_requests_total", operation=operation, outcome=outcome)
            observe_ms("extractor_backend_request_latency_ms", duration_ms, operation=operation)

    async def list_fields(self, source: SourceConfig) -> FieldsResponse:
        source = _require_source(source)
        response = await self._request("POST", FETCH_FIELDS_PATH, operation="list_fields", data=_source_form(source))
        out = _parse(FieldsResponse, _json_body(response, "list_fields"), "list_fields", response.status_code)
        logger.info("fields_loaded total=%s file_fields=%s", out.total_fields, len(out.file_fields))
        return out

    # The backend already excludes records extracted by earlier runs.
    async def list_candidates(self, source: SourceConfig, compiled_filter: str = "") -> CandidatesResponse:
        source = _require_source(source)
        form = _source_form(source, compiled_filter)
        form[FORM_STORE_IMAGES] = "true" if is_prestore_images_enabled() else "false"
        response = await self._request("POST", PREVIEW_PATH, operation="list_candidates", data=form)
        out = _parse(CandidatesResponse, _json_body(response, "list_candidates"), "list_candidates", response.status_code)
        logger.info(
            "candidates_loaded count=%s already_extracted=%s images_stored=%s",
            len(out.sample_records),
            out.already_extracted_count,
            out.images_stored,
        )
        return out

    async def start_job(
        self,
        source: SourceConfig,
        compiled_filter: str,
        selected_ids: Iterable[str],
    ) -> Union[JobStarted, DuplicateJobConflict]:
        source = _require_source(source)
        ids = [str(x) for x in (selected_ids or [])]
        if not ids:
            raise ConfigError("Select at least one record to process")

        form = _source_form(source, compiled_filter)
        form[FORM_SELECTED_RECORD_IDS] = json.dumps(ids)
        response = await self._request("POST", START_PATH, operation="start_job", data=form)
        body = _json_body(response, "start_job")

        if response.status_code == DUPLICATE_JOB_STATUS_CODE:
            # FastAPI backends wrap HTTPException payloads in "detail".
            if "active_job_id" not in body and isinstance(body.get("detail"), dict):
                body = body["detail"]
            try:
                conflict = DuplicateJobConflict.model_validate(body)
            except ValidationError as exc:
                raise RemoteError("start_job: conflict response without active_job_id", status_code=response.status_code) from exc
            logger.info("duplicate_job_conflict active_job_id=%s", conflict.active_job_id)
            incr("extractor_duplicate_job_conflicts_total")
            return conflict

        if response.status_code >= 400:
            raise RemoteError(
                f"start_job: {body.get('error') or body.get('message') or 'HTTP ' + str(response.status_code)}",
                status_code=response.status_code,
            )

        started = _parse(JobStarted, body, "start_job", response.status_code)
        if not started.job_id:
            raise RemoteError("start_job: success without job_id", status_code=response.status_code)
        logger.info("job_started job_id=%s selected=%s", started.job_id, len(ids))
        return started

    async def job_status(self, job_id: str) -> JobStatusResponse:
        if not str(job_id or "").strip():
            raise ConfigError("job_id is required")
        response = await self._request("GET", STATUS_PATH.format(job_id=job_id), operation="job_status")
        return _parse(JobStatusResponse, _json_body(response, "job_status"), "job_status", response.status_code)
