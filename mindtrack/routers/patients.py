"""
Discharge & Treatment Goal API.

Endpoints:
  GET   /api/patients/{id}/discharge-check                       Evaluate discharge criteria
  POST  /api/patients/{id}/auto-discharge                        Discharge if eligible
  PATCH /api/patients/{id}/goals/{index}                         Update a goal (+ discharge check)
  POST  /api/patients/{id}/discharge-requests                    Request a manual discharge
  POST  /api/patients/{id}/discharge-requests/{rid}/review       Approve / deny (admin, supervisor)
  GET   /api/reports/treatment-completion                        Fleet completion rate
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from mindtrack.dependencies import (
    Caller,
    get_caller,
    get_services,
    http_error,
    require_reviewer,
)
from mindtrack.schemas.patients import (
    DischargeRequestCreate,
    DischargeReviewRequest,
    GoalUpdateRequest,
)
from mindtrack.setup import ClinicServices

logger = logging.getLogger("mindtrack.api")

router = APIRouter(tags=["patients"])


@router.get("/api/patients/{patient_id}/discharge-check")
async def discharge_check(
    patient_id: str,
    services: ClinicServices = Depends(get_services),
):
    try:
        check = await services.discharge_engine.check_for_auto_discharge(patient_id)
    except Exception as exc:
        raise http_error(exc, "Discharge check")
    return check.as_dict()


@router.post("/api/patients/{patient_id}/auto-discharge")
async def auto_discharge(
    patient_id: str,
    caller: Caller = Depends(get_caller),
    services: ClinicServices = Depends(get_services),
):
    logger.info("Auto-discharge of %s requested by %s", patient_id, caller.user_id)
    try:
        outcome = await services.discharge_engine.auto_discharge_patient(patient_id)
    except Exception as exc:
        raise http_error(exc, "Auto-discharge")
    return outcome.as_dict()


@router.patch("/api/patients/{patient_id}/goals/{goal_index}")
async def update_goal(
    patient_id: str,
    goal_index: int,
    request: GoalUpdateRequest,
    caller: Caller = Depends(get_caller),
    services: ClinicServices = Depends(get_services),
):
    """
    Update one treatment goal.  When the goal becomes achieved, the
    discharge criteria are re-evaluated and returned alongside.
    """
    engine = services.discharge_engine
    try:
        result = await engine.update_treatment_goal(
            patient_id, goal_index, request.model_dump(exclude_none=True)
        )
        response = result.as_dict()
        if result.should_check_discharge:
            response["discharge_check"] = (
                await engine.check_for_auto_discharge(patient_id)
            ).as_dict()
    except Exception as exc:
        raise http_error(exc, "Goal update")

    logger.info("Goal %d of %s updated by %s", goal_index, patient_id, caller.user_id)
    return response


@router.post("/api/patients/{patient_id}/discharge-requests", status_code=201)
async def create_discharge_request(
    patient_id: str,
    request: DischargeRequestCreate,
    caller: Caller = Depends(get_caller),
    services: ClinicServices = Depends(get_services),
):
    try:
        created = await services.discharge_engine.request_discharge(
            patient_id, caller.user_id, request.reason
        )
    except Exception as exc:
        raise http_error(exc, "Discharge request")
    return created.model_dump(mode="json")


@router.post("/api/patients/{patient_id}/discharge-requests/{request_id}/review")
async def review_discharge_request(
    patient_id: str,
    request_id: str,
    request: DischargeReviewRequest,
    caller: Caller = Depends(require_reviewer),
    services: ClinicServices = Depends(get_services),
):
    try:
        reviewed = await services.discharge_engine.review_discharge_request(
            patient_id, request_id, caller.user_id, request.approve, request.notes
        )
    except Exception as exc:
        raise http_error(exc, "Discharge review")
    return reviewed.model_dump(mode="json")


@router.get("/api/reports/treatment-completion")
async def treatment_completion_report(
    services: ClinicServices = Depends(get_services),
):
    try:
        report = await services.discharge_engine.calculate_treatment_completion_rate()
    except Exception as exc:
        raise http_error(exc, "Treatment completion report")
    return report.as_dict()
