"""
Email template registry.

Each template kind maps to a renderer that turns a payload dict into an
``EmailTemplate`` (subject, plain text, HTML).  Unknown kinds fall back
to the generic title/message template, so dispatch code never has to
know about presentation.
"""

from __future__ import annotations

import html
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

logger = logging.getLogger("notifications.templates")

CLINIC_NAME = "MindTrack Mental Health"


@dataclass
class EmailTemplate:
    subject: str
    text: str
    html: str


Renderer = Callable[[dict[str, Any]], EmailTemplate]

_REGISTRY: dict[str, Renderer] = {}


def register(kind: str) -> Callable[[Renderer], Renderer]:
    def decorator(fn: Renderer) -> Renderer:
        _REGISTRY[kind] = fn
        return fn
    return decorator


def registered_kinds() -> list[str]:
    return sorted(_REGISTRY)


def render(kind: str, payload: dict[str, Any]) -> EmailTemplate:
    renderer = _REGISTRY.get(kind)
    if renderer is None:
        logger.debug("No template for %s, using generic", kind)
        renderer = _REGISTRY["generic"]
    return renderer(payload)


# ── Helpers ──


def _fmt_date(value: Any) -> str:
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d")
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value).strftime("%Y-%m-%d")
        except ValueError:
            return value
    return str(value) if value is not None else ""


def _page(heading: str, rows: list[tuple[str, str]], intro: str = "") -> str:
    """Minimal HTML body: heading, optional intro, key/value rows."""
    parts = [
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">',
        f'<h2 style="color: #2563eb;">{html.escape(heading)}</h2>',
    ]
    if intro:
        parts.append(f"<p>{html.escape(intro)}</p>")
    if rows:
        parts.append('<div style="background-color: #f8fafc; padding: 20px; border-radius: 8px;">')
        for label, value in rows:
            parts.append(
                f"<p><strong>{html.escape(label)}:</strong> {html.escape(value)}</p>"
            )
        parts.append("</div>")
    parts.append(f"<p>Best regards,<br>{CLINIC_NAME} Team</p></div>")
    return "\n".join(parts)


def _text(heading: str, rows: list[tuple[str, str]], intro: str = "") -> str:
    lines = [heading, ""]
    if intro:
        lines += [intro, ""]
    lines += [f"{label}: {value}" for label, value in rows]
    lines += ["", "Best regards,", f"{CLINIC_NAME} Team"]
    return "\n".join(lines)


def _build(subject: str, heading: str, rows: list[tuple[str, str]], intro: str = "") -> EmailTemplate:
    rows = [(label, value) for label, value in rows if value]
    return EmailTemplate(
        subject=subject,
        text=_text(heading, rows, intro),
        html=_page(heading, rows, intro),
    )


# ── Templates ──


@register("generic")
def _generic(payload: dict[str, Any]) -> EmailTemplate:
    title = str(payload.get("title") or "Notification")
    message = str(payload.get("message") or "")
    return EmailTemplate(
        subject=title,
        text=f"{title}\n\n{message}",
        html=f"<div><h2>{html.escape(title)}</h2><p>{html.escape(message)}</p></div>",
    )


@register("appointment_reminder")
def _appointment_reminder(payload: dict[str, Any]) -> EmailTemplate:
    return _build(
        "Appointment Reminder",
        "Appointment Reminder",
        [
            ("Patient", str(payload.get("patientName", ""))),
            ("Date", _fmt_date(payload.get("appointmentDate"))),
            ("Time", str(payload.get("appointmentTime", ""))),
            ("Location", str(payload.get("location") or "")),
            ("Notes", str(payload.get("notes") or "")),
        ],
        intro="This is a reminder about an upcoming appointment.",
    )


@register("patient_update")
def _patient_update(payload: dict[str, Any]) -> EmailTemplate:
    name = str(payload.get("patientName", ""))
    return _build(
        f"Patient Update: {name}",
        "Patient Update",
        [
            ("Patient", name),
            ("Status", str(payload.get("status", ""))),
            ("Update", str(payload.get("updateType", ""))),
            ("Details", str(payload.get("details") or "")),
        ],
    )


@register("system_alert")
def _system_alert(payload: dict[str, Any]) -> EmailTemplate:
    severity = str(payload.get("severity", "info")).upper()
    title = str(payload.get("title", "System Alert"))
    rows = [("Severity", severity), ("Message", str(payload.get("message", "")))]
    if payload.get("actionRequired"):
        rows.append(("Action required", "Yes"))
    return _build(f"[{severity}] {title}", title, rows)


@register("staff_invitation")
def _staff_invitation(payload: dict[str, Any]) -> EmailTemplate:
    role = str(payload.get("role", ""))
    invited_by = str(payload.get("invitedBy", ""))
    return _build(
        f"Staff Invitation - {CLINIC_NAME}",
        "Staff Invitation",
        [("Role", role), ("Invited by", invited_by)],
        intro=(
            f"You have been invited by {invited_by} to join {CLINIC_NAME}. "
            "Please contact your administrator to complete your account setup."
        ),
    )
