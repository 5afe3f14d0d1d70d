from hirepipe.db.base import Base
from hirepipe.models.activity import CandidateActivity
from hirepipe.models.application import JobApplication
from hirepipe.models.candidate import Candidate
from hirepipe.models.company import Company
from hirepipe.models.job import Job
from hirepipe.models.sla_config import SlaConfig
from hirepipe.models.sla_default import SystemSlaDefault
from hirepipe.models.stage import PipelineStage
from hirepipe.models.stage_template import PipelineStageTemplate
from hirepipe.models.stage_history import StageHistory

__all__ = [
    "Base",
    "Candidate",
    "CandidateActivity",
    "Company",
    "Job",
    "JobApplication",
    "PipelineStage",
    "PipelineStageTemplate",
    "SlaConfig",
    "StageHistory",
    "SystemSlaDefault",
]
