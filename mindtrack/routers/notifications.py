"""
Notification API — the caller's own notification feed and preferences.

Endpoints:
  GET    /api/notifications                   List (unread_only, limit, offset, type)
  GET    /api/notifications/unread-count      Unread count
  GET    /api/notifications/stats             Totals by type
  PATCH  /api/notifications/read-all          Mark all read
  PATCH  /api/notifications/{id}/read         Mark one read
  DELETE /api/notifications/{id}              Delete one
  POST   /api/notifications/cleanup           Remove expired (admin only)
  GET    /api/notifications/preferences       Read preferences
  PUT    /api/notifications/preferences       Replace preferences
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query

from mindtrack.dependencies import Caller, get_caller, get_services, http_error, require_admin
from mindtrack.notifications.models import NotificationType
from mindtrack.schemas.notifications import CleanupResponse, CountResponse
from mindtrack.setup import ClinicServices

logger = logging.getLogger("mindtrack.api")

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("")
async def list_notifications(
    unread_only: bool = False,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    type: Optional[NotificationType] = None,
    caller: Caller = Depends(get_caller),
    services: ClinicServices = Depends(get_services),
):
    notifications = await services.notifications.get_user_notifications(
        caller.user_id, unread_only=unread_only, limit=limit, offset=offset, type=type
    )
    return [n.model_dump(mode="json") for n in notifications]


@router.get("/unread-count", response_model=CountResponse)
async def unread_count(
    caller: Caller = Depends(get_caller),
    services: ClinicServices = Depends(get_services),
):
    return CountResponse(count=await services.notifications.get_unread_count(caller.user_id))


@router.get("/stats")
async def notification_stats(
    caller: Caller = Depends(get_caller),
    services: ClinicServices = Depends(get_services),
):
    stats = await services.notifications.get_notification_stats(caller.user_id)
    return stats.model_dump()


@router.patch("/read-all")
async def mark_all_read(
    caller: Caller = Depends(get_caller),
    services: ClinicServices = Depends(get_services),
):
    return {"success": await services.notifications.mark_all_as_read(caller.user_id)}


@router.patch("/{notification_id}/read")
async def mark_read(
    notification_id: str,
    caller: Caller = Depends(get_caller),
    services: ClinicServices = Depends(get_services),
):
    if not await services.notifications.mark_as_read(notification_id, caller.user_id):
        raise HTTPException(status_code=404, detail="Notification not found or already read")
    return {"success": True}


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: str,
    caller: Caller = Depends(get_caller),
    services: ClinicServices = Depends(get_services),
):
    if not await services.notifications.delete_notification(notification_id, caller.user_id):
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"success": True}


@router.post("/cleanup", response_model=CleanupResponse)
async def cleanup_expired(
    caller: Caller = Depends(require_admin),
    services: ClinicServices = Depends(get_services),
):
    logger.info("Notification cleanup requested by %s", caller.user_id)
    try:
        deleted = await services.notifications.cleanup_expired_notifications()
    except Exception as exc:
        raise http_error(exc, "Notification cleanup")
    return CleanupResponse(deleted_count=deleted)


@router.get("/preferences")
async def get_preferences(
    caller: Caller = Depends(get_caller),
    services: ClinicServices = Depends(get_services),
):
    try:
        preferences = await services.notifications.get_preferences(caller.user_id)
    except Exception as exc:
        raise http_error(exc, "Preference lookup")
    return preferences.model_dump(mode="json")


@router.put("/preferences")
async def update_preferences(
    preferences: dict[str, Any] = Body(...),
    caller: Caller = Depends(get_caller),
    services: ClinicServices = Depends(get_services),
):
    try:
        updated = await services.notifications.update_preferences(caller.user_id, preferences)
    except Exception as exc:
        raise http_error(exc, "Preference update")
    return updated.model_dump(mode="json")
