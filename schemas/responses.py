# User value: This file validates backend payloads so operators only see well-formed extraction data.
from typing import List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from schemas.job_contract import JOB_STATUS_RUNNING


class CandidateRecord(BaseModel):
    # User value: one source record that still needs extraction.
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    record_id: str
    display_name: str = Field(default="", validation_alias=AliasChoices("display_name", "student_name"))
    has_attachment_a: bool = Field(default=False, validation_alias=AliasChoices("has_attachment_a", "has_bank_image"))
    has_attachment_b: bool = Field(default=False, validation_alias=AliasChoices("has_attachment_b", "has_bill_image"))


class FieldsResponse(BaseModel):
    success: bool
    file_fields: List[str] = Field(default_factory=list)
    text_fields: List[str] = Field(default_factory=list)
    all_fields: List[str] = Field(default_factory=list)
    total_fields: int = Field(default=0, ge=0)
    error: Optional[str] = None


class CandidatesResponse(BaseModel):
    success: bool
    sample_records: List[CandidateRecord] = Field(default_factory=list)
    already_extracted_count: int = Field(default=0, ge=0)
    total_records: Optional[int] = Field(default=None, ge=0)
    images_stored: int = Field(default=0, ge=0)
    error: Optional[str] = None


class JobStarted(BaseModel):
    success: bool
    job_id: Optional[str] = None
    message: Optional[str] = None
    error: Optional[str] = None


class DuplicateJobConflict(BaseModel):
    # User value: an equivalent job is already running; the console adopts it instead of failing.
    active_job_id: str = Field(..., min_length=1)
    message: str = ""


class Progress(BaseModel):
    total_records: int = Field(default=0, ge=0)
    processed_records: int = Field(default=0, ge=0)
    successful_records: int = Field(default=0, ge=0)
    failed_records: int = Field(default=0, ge=0)
    progress_percent: float = Field(default=0.0, ge=0.0)


class CostSummary(BaseModel):
    total_cost_usd: float = Field(default=0.0, ge=0.0)


class JobStatusResponse(BaseModel):
    success: bool
    status: Optional[Literal["running", "completed", "failed"]] = None
    progress: Progress = Field(default_factory=Progress)
    cost: CostSummary = Field(default_factory=CostSummary)
    error: Optional[str] = None


class Job(BaseModel):
    job_id: str
    status: Literal["running", "completed", "failed"] = JOB_STATUS_RUNNING
    progress: Progress = Field(default_factory=Progress)
    cost: CostSummary = Field(default_factory=CostSummary)
    adopted: bool = False


class JobSnapshot(BaseModel):
    # User value: one summary of live job state for the operator console.
    job_id: Optional[str] = None
    status: Optional[str] = None
    monitor_state: str
    progress: Progress = Field(default_factory=Progress)
    total_cost_usd: float = 0.0
    speed_per_minute: float = 0.0
    eta_minutes: Optional[float] = None
    adopted: bool = False


class VisibleRecordsResponse(BaseModel):
    records: List[CandidateRecord] = Field(default_factory=list)
    page: int = 1
    total_pages: int = 0
    total_visible: int = 0
    total_loaded: int = 0
    selected_count: int = 0
    search: str = ""


class SelectionResponse(BaseModel):
    selected_ids: List[str] = Field(default_factory=list)
    selected_count: int = 0
