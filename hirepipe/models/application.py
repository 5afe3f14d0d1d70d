from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from hirepipe.core.datetime_utils import utcnow_naive
from hirepipe.db.base import Base


class JobApplication(Base):
    """A candidate's association with one job, tracked through that job's stages."""

    __tablename__ = "job_application"
    __table_args__ = (UniqueConstraint("job_id", "candidate_id", name="uq_job_application_job_candidate"),)

    application_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_id: Mapped[int] = mapped_column(ForeignKey("job.job_id", ondelete="CASCADE"), index=True)
    candidate_id: Mapped[int] = mapped_column(ForeignKey("candidate.candidate_id", ondelete="CASCADE"), index=True)
    current_stage_id: Mapped[int] = mapped_column(
        ForeignKey("pipeline_stage.stage_id"), index=True
    )

    applied_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow_naive)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow_naive, onupdate=utcnow_naive)
