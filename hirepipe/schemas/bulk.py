from typing import List, Optional

from pydantic import BaseModel, Field


class BulkMoveRequest(BaseModel):
    application_ids: List[int] = Field(default_factory=list)
    target_stage_id: int
    comment: Optional[str] = None


class BulkMoveFailureOut(BaseModel):
    application_id: int
    candidate_name: Optional[str] = None
    error: str
    error_code: str


class BulkMoveOut(BaseModel):
    success: bool
    moved_count: int
    failed_count: int
    failures: List[BulkMoveFailureOut] = Field(default_factory=list)
