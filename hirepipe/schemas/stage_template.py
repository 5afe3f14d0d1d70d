from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class TemplateSubStage(BaseModel):
    name: str
    position: Optional[int] = None


class TemplateStage(BaseModel):
    name: str
    position: Optional[int] = None
    is_mandatory: bool = False
    sub_stages: List[TemplateSubStage] = Field(default_factory=list)


class StageTemplateCreateRequest(BaseModel):
    name: str
    description: Optional[str] = None
    is_public: bool = False
    stages: List[TemplateStage] = Field(default_factory=list)


class StageTemplateUpdateRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    is_public: Optional[bool] = None
    stages: Optional[List[TemplateStage]] = None


class StageTemplateImportRequest(BaseModel):
    job_id: int
    name: str
    description: Optional[str] = None
    is_public: bool = False


class StageTemplateApplyRequest(BaseModel):
    template_id: int


class StageTemplateOut(BaseModel):
    template_id: int
    company_id: int
    name: str
    description: Optional[str] = None
    is_public: bool
    created_by: Optional[str] = None
    stages: List[TemplateStage]
    created_at: datetime
    updated_at: datetime


class JobStageLayoutOut(BaseModel):
    job_id: int
    job_title: str
    stages: List[TemplateStage]
    created_at: datetime

    class Config:
        from_attributes = True
