from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from mindtrack.lifecycle.models import GoalStatus


class GoalUpdateRequest(BaseModel):
    status: Optional[GoalStatus] = None
    achieved_date: Optional[datetime] = None
    notes: Optional[str] = None


class DischargeRequestCreate(BaseModel):
    reason: str = Field(min_length=1)


class DischargeReviewRequest(BaseModel):
    approve: bool
    notes: Optional[str] = None
