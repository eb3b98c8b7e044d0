"""
Shared FastAPI dependencies used across routers.

The wired ``ClinicServices`` container lives on ``app.state.services``
(set in mindtrack.app at startup).  Caller identity arrives in the
X-User-Id / X-User-Role headers from the auth layer in front of us.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request

from mindtrack.lifecycle.errors import DependencyFailure, NotFoundError, ValidationFailure
from mindtrack.lifecycle.models import StaffRole
from mindtrack.setup import ClinicServices

logger = logging.getLogger("mindtrack.api")


def get_services(request: Request) -> ClinicServices:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Services not initialized")
    return services


@dataclass
class Caller:
    user_id: str
    role: Optional[StaffRole]

    @property
    def is_admin(self) -> bool:
        return self.role == StaffRole.ADMIN

    @property
    def can_review_discharge(self) -> bool:
        return self.role in (StaffRole.ADMIN, StaffRole.SUPERVISOR)


def get_caller(
    x_user_id: str = Header(...),
    x_user_role: Optional[str] = Header(None),
) -> Caller:
    role = None
    if x_user_role:
        try:
            role = StaffRole(x_user_role.lower())
        except ValueError:
            logger.warning("Unknown role header %r for %s", x_user_role, x_user_id)
    return Caller(user_id=x_user_id, role=role)


def require_admin(caller: Caller = Depends(get_caller)) -> Caller:
    if not caller.is_admin:
        raise HTTPException(status_code=403, detail="Administrator access required")
    return caller


def require_reviewer(caller: Caller = Depends(get_caller)) -> Caller:
    if not caller.can_review_discharge:
        raise HTTPException(
            status_code=403, detail="Administrator or supervisor access required"
        )
    return caller


def http_error(exc: Exception, context: str) -> HTTPException:
    """Translate a core error into the HTTP error the client sees."""
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ValidationFailure):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, DependencyFailure):
        logger.warning("%s unavailable: %s", context, exc)
        return HTTPException(status_code=503, detail=str(exc))
    logger.error("%s failed: %s", context, exc, exc_info=True)
    return HTTPException(status_code=500, detail=f"{context} failed")
