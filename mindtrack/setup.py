"""
Service Setup — builds and wires every MindTrack component.

Called once at app startup.  Components are created here, explicitly,
and passed to each other by reference; nothing else in the package
reads settings or keeps module-level singletons.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from mindtrack import settings
from mindtrack.infrastructure.store import ClinicStore, GCSClinicStore, InMemoryClinicStore
from mindtrack.lifecycle.appointment_status import AppointmentStatusEngine
from mindtrack.lifecycle.audit import AuditTrail
from mindtrack.lifecycle.discharge import DischargeEligibilityEngine
from mindtrack.lifecycle.sweep import AppointmentSweepScheduler
from mindtrack.notifications.dispatchers.base import EmailSender
from mindtrack.notifications.dispatchers.email_dispatcher import SendGridEmailDispatcher
from mindtrack.notifications.service import NotificationService
from mindtrack.realtime.hub import FanoutHub

logger = logging.getLogger("mindtrack.setup")


@dataclass
class ClinicServices:
    store: ClinicStore
    hub: FanoutHub
    audit: AuditTrail
    notifications: NotificationService
    status_engine: AppointmentStatusEngine
    discharge_engine: DischargeEligibilityEngine
    scheduler: AppointmentSweepScheduler

    async def start_background_jobs(self) -> None:
        await self.scheduler.start()

    async def shutdown(self) -> None:
        await self.scheduler.stop()
        logger.info("MindTrack services shut down")


def build_store(backend: str = settings.STORAGE_BACKEND) -> ClinicStore:
    if backend == "gcs":
        from mindtrack.infrastructure.gcs import GCSBucketManager

        logger.info("Using GCS store (bucket=%s)", settings.GCS_BUCKET_NAME)
        return GCSClinicStore(GCSBucketManager(bucket_name=settings.GCS_BUCKET_NAME))
    if backend != "memory":
        raise ValueError(f"Unknown STORAGE_BACKEND: {backend}")
    logger.info("Using in-memory store")
    return InMemoryClinicStore()


def build_email_sender() -> EmailSender:
    return SendGridEmailDispatcher(
        api_key=settings.SENDGRID_API_KEY,
        from_email=settings.SENDGRID_FROM_EMAIL,
        from_name=settings.SENDGRID_FROM_NAME,
    )


def build_services(
    store: Optional[ClinicStore] = None,
    email_sender: Optional[EmailSender] = None,
    hub: Optional[FanoutHub] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> ClinicServices:
    """
    Wire all components.  Every collaborator can be overridden, which is
    how tests get an in-memory store, a fixed clock and a recording
    email sender.
    """
    store = store if store is not None else build_store()
    email_sender = email_sender if email_sender is not None else build_email_sender()
    hub = hub if hub is not None else FanoutHub()
    clock_kwargs = {"clock": clock} if clock is not None else {}

    audit = AuditTrail(store, hub)
    notifications = NotificationService(
        store,
        email_sender,
        hub=hub,
        timezone_name=settings.CLINIC_TIMEZONE,
        email_timeout=settings.EMAIL_TIMEOUT_SECONDS,
        **clock_kwargs,
    )
    status_engine = AppointmentStatusEngine(
        store, audit, hub, timezone_name=settings.CLINIC_TIMEZONE, **clock_kwargs
    )
    discharge_engine = DischargeEligibilityEngine(
        store, audit, notifications, hub, **clock_kwargs
    )
    scheduler = AppointmentSweepScheduler(
        status_engine,
        cleanup=notifications.cleanup_expired_notifications,
        interval=settings.SWEEP_INTERVAL_SECONDS,
        initial_delay=settings.SWEEP_INITIAL_DELAY_SECONDS,
        cleanup_interval=settings.NOTIFICATION_CLEANUP_INTERVAL_SECONDS,
    )

    logger.info("MindTrack services built (store=%s)", type(store).__name__)
    return ClinicServices(
        store=store,
        hub=hub,
        audit=audit,
        notifications=notifications,
        status_engine=status_engine,
        discharge_engine=discharge_engine,
        scheduler=scheduler,
    )
