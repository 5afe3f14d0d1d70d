from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from hirepipe.core.datetime_utils import utcnow_naive
from hirepipe.db.base import Base


class SlaConfig(Base):
    __tablename__ = "sla_config"
    __table_args__ = (UniqueConstraint("company_id", "stage_name", name="uq_sla_config_company_stage"),)

    sla_config_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(ForeignKey("company.company_id", ondelete="CASCADE"), index=True)
    stage_name: Mapped[str] = mapped_column(String(100))
    threshold_days: Mapped[int] = mapped_column(Integer)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow_naive)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow_naive, onupdate=utcnow_naive)
