from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from hirepipe.core.datetime_utils import utcnow_naive
from hirepipe.db.base import Base


class StageHistory(Base):
    """
    Append-only residence ledger. `stage_name` is copied at write time so entries
    survive stage renames and deletes; an entry with `exited_at` NULL is the
    application's current residence.
    """

    __tablename__ = "stage_history"
    __table_args__ = (Index("ix_stage_history_open", "application_id", "exited_at"),)

    history_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    application_id: Mapped[int] = mapped_column(
        ForeignKey("job_application.application_id", ondelete="CASCADE"), index=True
    )
    stage_id: Mapped[int | None] = mapped_column(
        ForeignKey("pipeline_stage.stage_id", ondelete="SET NULL"), nullable=True
    )
    stage_name: Mapped[str] = mapped_column(String(100))

    entered_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow_naive)
    exited_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    duration_hours: Mapped[float | None] = mapped_column(Float, nullable=True)

    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    moved_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
