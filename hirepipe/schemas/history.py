from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class StageHistoryOut(BaseModel):
    history_id: int
    application_id: int
    stage_id: Optional[int] = None
    stage_name: str
    entered_at: datetime
    exited_at: Optional[datetime] = None
    duration_hours: Optional[float] = None
    comment: Optional[str] = None
    moved_by: Optional[str] = None

    class Config:
        from_attributes = True
