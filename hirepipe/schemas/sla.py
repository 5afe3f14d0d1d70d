from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from hirepipe.services.sla import SlaStatus


class SlaConfigOut(BaseModel):
    sla_config_id: int
    company_id: int
    stage_name: str
    threshold_days: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class SlaConfigIn(BaseModel):
    stage_name: str
    threshold_days: int


class SlaConfigBatchIn(BaseModel):
    configs: List[SlaConfigIn] = Field(default_factory=list)


class SlaEvaluationOut(BaseModel):
    application_id: int
    stage_id: int
    stage_name: str
    entered_at: datetime
    hours_in_stage: float
    threshold_days: Optional[int] = None
    threshold_hours: Optional[float] = None
    grace_multiplier: float
    status: SlaStatus

    class Config:
        from_attributes = True


class SlaBreachOut(BaseModel):
    application_id: int
    candidate_id: int
    candidate_name: str
    job_id: int
    job_title: str
    stage_name: str
    entered_at: datetime
    days_in_stage: int
    threshold_days: int
    days_overdue: int
    status: SlaStatus

    class Config:
        from_attributes = True


class SlaDefaultOut(BaseModel):
    stage_name: str
    threshold_days: int


class SlaDefaultBatchIn(BaseModel):
    defaults: List[SlaConfigIn] = Field(default_factory=list)
