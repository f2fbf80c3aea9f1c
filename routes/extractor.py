# User value: This file exposes one endpoint per operator action so the browser console can drive extraction runs.
from fastapi import APIRouter, Depends, HTTPException, Query, Request

from schemas.filters import FilterClause
from schemas.requests import (
    FilterClauseRequest,
    ResetRequest,
    SearchRequest,
    SelectFirstNRequest,
    SourceConfig,
    ToggleRecordRequest,
)
from schemas.responses import FieldsResponse, JobSnapshot, SelectionResponse, VisibleRecordsResponse
from services.orchestrator import ExtractionOrchestrator
from utils.metrics import incr
from utils.stage_logging import log_stage

router = APIRouter(prefix="/extractor")


def get_orchestrator(request: Request) -> ExtractionOrchestrator:
    return request.app.state.orchestrator


def _selection(orch: ExtractionOrchestrator) -> SelectionResponse:
    return SelectionResponse(selected_ids=orch.selection.ids(), selected_count=len(orch.selection))


def _visible(orch: ExtractionOrchestrator) -> VisibleRecordsResponse:
    return VisibleRecordsResponse(
        records=orch.page_records(),
        page=orch.current_page,
        total_pages=orch.total_pages(),
        total_visible=len(orch.visible_records()),
        total_loaded=len(orch.records),
        selected_count=len(orch.selection),
        search=orch.search,
    )


@router.put("/config")
async def configure_source(payload: SourceConfig, orch: ExtractionOrchestrator = Depends(get_orchestrator)):
    orch.configure(payload)
    return payload


@router.post("/fields", response_model=FieldsResponse)
async def fetch_fields(orch: ExtractionOrchestrator = Depends(get_orchestrator)):
    incr("extractor_console_actions_total", action="fetch_fields")
    return await orch.fetch_fields()


@router.get("/filters")
async def list_filters(orch: ExtractionOrchestrator = Depends(get_orchestrator)):
    return {"filters": orch.filters, "compiled": orch.compiled_filter()}


@router.post("/filters", response_model=FilterClause)
async def add_filter(orch: ExtractionOrchestrator = Depends(get_orchestrator)):
    return orch.add_filter()


@router.patch("/filters/{clause_id}", response_model=FilterClause)
async def update_filter(clause_id: str, payload: FilterClauseRequest, orch: ExtractionOrchestrator = Depends(get_orchestrator)):
    try:
        return orch.update_filter(clause_id, **payload.model_dump(exclude_unset=True))
    except KeyError:
        raise HTTPException(status_code=404, detail="Filter not found")


@router.delete("/filters/{clause_id}")
async def remove_filter(clause_id: str, orch: ExtractionOrchestrator = Depends(get_orchestrator)):
    orch.remove_filter(clause_id)
    return {"filters": orch.filters, "compiled": orch.compiled_filter()}


@router.post("/records/load", response_model=VisibleRecordsResponse)
async def load_records(orch: ExtractionOrchestrator = Depends(get_orchestrator)):
    incr("extractor_console_actions_total", action="load_records")
    await orch.load_records()
    return _visible(orch)


@router.get("/records", response_model=VisibleRecordsResponse)
async def list_records(orch: ExtractionOrchestrator = Depends(get_orchestrator), page: int | None = Query(default=None, ge=1)):
    if page is not None:
        orch.page_records(page)
    return _visible(orch)


@router.post("/records/search", response_model=VisibleRecordsResponse)
async def search_records(payload: SearchRequest, orch: ExtractionOrchestrator = Depends(get_orchestrator)):
    orch.set_search(payload.search)
    return _visible(orch)


@router.post("/selection/toggle", response_model=SelectionResponse)
async def toggle_record(payload: ToggleRecordRequest, orch: ExtractionOrchestrator = Depends(get_orchestrator)):
    orch.toggle(payload.record_id)
    return _selection(orch)


@router.post("/selection/all", response_model=SelectionResponse)
async def select_all(orch: ExtractionOrchestrator = Depends(get_orchestrator)):
    orch.select_all()
    return _selection(orch)


@router.post("/selection/first-n", response_model=SelectionResponse)
async def select_first_n(payload: SelectFirstNRequest, orch: ExtractionOrchestrator = Depends(get_orchestrator)):
    orch.select_first_n(payload.n)
    return _selection(orch)


@router.post("/selection/clear", response_model=SelectionResponse)
async def clear_selection(orch: ExtractionOrchestrator = Depends(get_orchestrator)):
    orch.clear_selection()
    return _selection(orch)


@router.post("/jobs", response_model=JobSnapshot)
async def start_job(orch: ExtractionOrchestrator = Depends(get_orchestrator)):
    incr("extractor_console_actions_total", action="start_job")
    job = await orch.start_extraction()
    log_stage(job_id=job.job_id, stage="CONSOLE_START", event="COMPLETED", adopted=job.adopted)
    return orch.snapshot()


@router.get("/jobs/current")
async def current_job(orch: ExtractionOrchestrator = Depends(get_orchestrator)):
    return {"job": orch.snapshot(), "notices": orch.drain_notices()}


@router.post("/reset", response_model=JobSnapshot)
async def reset(payload: ResetRequest | None = None, orch: ExtractionOrchestrator = Depends(get_orchestrator)):
    await orch.reset(reload=payload.reload if payload is not None else True)
    return orch.snapshot()
