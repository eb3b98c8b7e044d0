"""
Centralized configuration for MindTrack.
Everything env-based lives here; components get their values through
constructor arguments wired up in mindtrack.setup.
"""

import os
from dotenv import load_dotenv

load_dotenv()

# --- Server ---
PORT = int(os.getenv("PORT", "8080"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# --- Storage ---
STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "memory")  # "memory" or "gcs"
GCS_BUCKET_NAME = os.getenv("GCS_BUCKET_NAME", "mindtrack_clinic_dev")

# --- Email (SendGrid) ---
SENDGRID_API_KEY = os.getenv("SENDGRID_API_KEY", "")
SENDGRID_FROM_EMAIL = os.getenv("SENDGRID_FROM_EMAIL", "noreply@mindtrack.app")
SENDGRID_FROM_NAME = os.getenv("SENDGRID_FROM_NAME", "MindTrack Clinic")
EMAIL_TIMEOUT_SECONDS = float(os.getenv("EMAIL_TIMEOUT_SECONDS", "10"))

# --- Notifications ---
# Quiet hours are evaluated in clinic-local time
CLINIC_TIMEZONE = os.getenv("CLINIC_TIMEZONE", "UTC")

# --- Background jobs ---
ENABLE_BACKGROUND_JOBS = os.getenv("ENABLE_BACKGROUND_JOBS", "true").lower() == "true"
SWEEP_INTERVAL_SECONDS = int(os.getenv("SWEEP_INTERVAL_SECONDS", "3600"))  # 1 hour
SWEEP_INITIAL_DELAY_SECONDS = int(os.getenv("SWEEP_INITIAL_DELAY_SECONDS", "120"))
NOTIFICATION_CLEANUP_INTERVAL_SECONDS = int(
    os.getenv("NOTIFICATION_CLEANUP_INTERVAL_SECONDS", "21600")  # 6 hours
)
