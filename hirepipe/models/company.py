from datetime import datetime

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from hirepipe.core.datetime_utils import utcnow_naive
from hirepipe.db.base import Base


class Company(Base):
    """Owned by the company-management collaborator; only the columns the engine reads."""

    __tablename__ = "company"

    company_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255))

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow_naive)
