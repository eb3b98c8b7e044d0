"""
Appointment Status API.

Endpoints:
  GET   /api/appointments/status-transitions             Transition table or ?from=&to= check
  GET   /api/appointments/{id}/status-recommendation     Preview what the sweep would do
  PATCH /api/appointments/{id}/status                    Manual status change
  POST  /api/appointments/update-statuses                Run the sweep now (admin only)
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from mindtrack.dependencies import Caller, get_caller, get_services, http_error, require_admin
from mindtrack.lifecycle.appointment_status import VALID_TRANSITIONS, is_valid_status_transition
from mindtrack.schemas.appointments import (
    StatusChangeRequest,
    StatusRecommendationResponse,
    SweepResponse,
)
from mindtrack.setup import ClinicServices

logger = logging.getLogger("mindtrack.api")

router = APIRouter(prefix="/api/appointments", tags=["appointments"])


@router.get("/status-transitions")
async def status_transitions(
    from_status: Optional[str] = Query(None, alias="from"),
    to_status: Optional[str] = Query(None, alias="to"),
):
    if from_status is not None and to_status is not None:
        return {
            "from": from_status,
            "to": to_status,
            "valid": is_valid_status_transition(from_status, to_status),
        }
    return {
        "transitions": {
            status.value: sorted(target.value for target in targets)
            for status, targets in VALID_TRANSITIONS.items()
        }
    }


@router.get("/{appointment_id}/status-recommendation", response_model=StatusRecommendationResponse)
async def status_recommendation(
    appointment_id: str,
    services: ClinicServices = Depends(get_services),
):
    appointment = await services.store.get_appointment(appointment_id)
    if appointment is None:
        raise HTTPException(status_code=404, detail=f"Appointment {appointment_id} not found")
    return services.status_engine.get_status_recommendation(appointment).as_dict()


@router.patch("/{appointment_id}/status")
async def change_status(
    appointment_id: str,
    request: StatusChangeRequest,
    caller: Caller = Depends(get_caller),
    services: ClinicServices = Depends(get_services),
):
    try:
        appointment = await services.status_engine.change_status(
            appointment_id, request.status, caller.user_id, request.reason or ""
        )
    except Exception as exc:
        raise http_error(exc, "Status change")
    return appointment.model_dump(mode="json")


@router.post("/update-statuses", response_model=SweepResponse)
async def update_statuses(
    caller: Caller = Depends(require_admin),
    services: ClinicServices = Depends(get_services),
):
    logger.info("Manual appointment sweep requested by %s", caller.user_id)
    try:
        updated = await services.scheduler.run_once()
    except Exception as exc:
        raise http_error(exc, "Appointment status update")
    return SweepResponse(updated_count=updated)
