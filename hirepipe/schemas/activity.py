from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel


class CandidateActivityOut(BaseModel):
    activity_id: int
    candidate_id: int
    application_id: Optional[int] = None
    activity_type: str
    description: str
    performed_by: Optional[str] = None
    meta_json: Dict[str, Any]
    created_at: datetime
