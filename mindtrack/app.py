"""
MindTrack Clinic Server — Application Factory
"""

import logging
import time

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from mindtrack import settings

# ── 1. Configure logging ──
logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
logger = logging.getLogger("mindtrack-server")

_startup_time = time.time()
logger.info("Server initialization started...")

# ── 2. Create FastAPI app ──
app = FastAPI(title="MindTrack Clinic Server")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── 3. Register routers ──
from mindtrack.routers import (  # noqa: E402
    appointments,
    health,
    notifications,
    patients,
    realtime,
)

app.include_router(health.router)
app.include_router(appointments.router)
app.include_router(patients.router)
app.include_router(notifications.router)
app.include_router(realtime.router)


# ── 4. Startup / shutdown ──
@app.on_event("startup")
async def startup_event():
    from mindtrack.setup import build_services

    if getattr(app.state, "services", None) is None:
        app.state.services = build_services()

    if settings.ENABLE_BACKGROUND_JOBS:
        await app.state.services.start_background_jobs()
    else:
        logger.info("Background jobs disabled (ENABLE_BACKGROUND_JOBS=false)")

    logger.info("=" * 60)
    logger.info("MindTrack Clinic Server Starting")
    logger.info("Listening on port: %s", settings.PORT)
    logger.info("Total init time: %.2fs", time.time() - _startup_time)
    logger.info("=" * 60)


@app.on_event("shutdown")
async def shutdown_event():
    services = getattr(app.state, "services", None)
    if services is not None:
        await services.shutdown()
