from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from hirepipe.schemas.stage import PipelineStageOut


class JobApplicationOut(BaseModel):
    application_id: int
    job_id: int
    candidate_id: int
    current_stage_id: int
    applied_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ApplicationCreateRequest(BaseModel):
    candidate_id: int
    stage_id: Optional[int] = None


class MoveToStageRequest(BaseModel):
    target_stage_id: int
    comment: Optional[str] = None


class MoveToStageOut(BaseModel):
    application: JobApplicationOut
    current_stage: PipelineStageOut
    from_stage_name: Optional[str] = None
    changed: bool
