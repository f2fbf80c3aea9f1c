# User value: This file defines operator inputs so extraction runs start from a clean configuration.
from pydantic import BaseModel, Field
from typing import Optional, Union


class SourceConfig(BaseModel):
    # User value: identifies the external report the candidate records come from.
    app_link_name: str = ""
    report_link_name: str = ""
    attachment_a_field: str = ""
    attachment_b_field: str = ""


class FilterClauseRequest(BaseModel):
    field: Optional[str] = None
    operator: Optional[str] = None
    value: Optional[Union[str, int, float]] = None


class SearchRequest(BaseModel):
    search: str = ""


class ToggleRecordRequest(BaseModel):
    record_id: str = Field(..., min_length=1)


class SelectFirstNRequest(BaseModel):
    n: int = Field(..., ge=0)


class ResetRequest(BaseModel):
    reload: bool = True
