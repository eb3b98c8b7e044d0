from typing import Optional

from pydantic import BaseModel

from mindtrack.lifecycle.models import AppointmentStatus


class StatusChangeRequest(BaseModel):
    status: AppointmentStatus
    reason: Optional[str] = None


class StatusRecommendationResponse(BaseModel):
    recommended_status: AppointmentStatus
    reason: str


class SweepResponse(BaseModel):
    success: bool = True
    updated_count: int
