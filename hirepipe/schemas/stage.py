from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class PipelineStageOut(BaseModel):
    stage_id: int
    job_id: int
    name: str
    position: int
    is_default: bool
    is_mandatory: bool
    requires_comment: bool
    parent_id: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True


class StageInsertRequest(BaseModel):
    name: str
    position: int
    parent_id: Optional[int] = None
    # Omitted: derived from the stage name (reject / declined / not selected).
    requires_comment: Optional[bool] = None


class StageReorderRequest(BaseModel):
    new_position: int = Field(..., description="Zero-based target position within the job's stage list.")
