from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from hirepipe.core.datetime_utils import utcnow_naive
from hirepipe.db.base import Base

JOB_STATUS_ACTIVE = "active"
JOB_STATUS_CLOSED = "closed"


class Job(Base):
    """Owned by the job-management collaborator; the engine only checks existence and ownership."""

    __tablename__ = "job"

    job_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(ForeignKey("company.company_id", ondelete="CASCADE"), index=True)
    title: Mapped[str] = mapped_column(String(255))
    status: Mapped[str] = mapped_column(String(50), default=JOB_STATUS_ACTIVE, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow_naive)
