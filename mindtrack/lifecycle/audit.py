"""
Audit Trail — write side of the audit log.

Every status write, discharge and review goes through ``append``.
Automatic mutations (sweep transitions, auto-discharge) are tagged
``automatic=True`` so they can be told apart from staff edits.
Audit failures are logged and never break the operation being audited.
"""

from __future__ import annotations

import logging
from typing import Any

from mindtrack.infrastructure.store import ClinicStore
from mindtrack.lifecycle.models import AuditEntry
from mindtrack.realtime.events import RealtimeEvent
from mindtrack.realtime.hub import FanoutHub

logger = logging.getLogger("lifecycle.audit")

SYSTEM_USER = "system"


class AuditTrail:

    def __init__(self, store: ClinicStore, hub: FanoutHub | None = None) -> None:
        self._store = store
        self._hub = hub

    async def append(
        self,
        user_id: str,
        action: str,
        resource_type: str,
        resource_id: str,
        details: dict[str, Any] | None = None,
        *,
        automatic: bool = False,
    ) -> AuditEntry | None:
        entry = AuditEntry(
            user_id=user_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            details=details or {},
            automatic=automatic,
        )
        try:
            await self._store.append_audit_entry(entry)
        except Exception as exc:
            logger.error(
                "Failed to write audit entry %s %s:%s: %s",
                action, resource_type, resource_id, exc,
            )
            return None

        logger.debug(
            "AUDIT %s %s %s:%s automatic=%s",
            user_id, action, resource_type, resource_id, automatic,
        )
        if self._hub is not None:
            await self._hub.publish(RealtimeEvent.AUDIT_LOG_CREATED, entry)
        return entry
