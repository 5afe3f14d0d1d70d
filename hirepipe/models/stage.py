from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from hirepipe.core.datetime_utils import utcnow_naive
from hirepipe.db.base import Base


class PipelineStage(Base):
    __tablename__ = "pipeline_stage"
    __table_args__ = (Index("ix_pipeline_stage_job_position", "job_id", "position"),)

    stage_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_id: Mapped[int] = mapped_column(ForeignKey("job.job_id", ondelete="CASCADE"), index=True)

    name: Mapped[str] = mapped_column(String(100))
    # Flat 0..n-1 sequence per job, sub-stages included.
    position: Mapped[int] = mapped_column(Integer)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)
    is_mandatory: Mapped[bool] = mapped_column(Boolean, default=False)
    requires_comment: Mapped[bool] = mapped_column(Boolean, default=False)
    parent_id: Mapped[int | None] = mapped_column(
        ForeignKey("pipeline_stage.stage_id"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow_naive)
