"""
Error taxonomy shared by the lifecycle engines and the notification layer.

  NotFoundError      — missing patient, appointment, goal index, request...
  ValidationFailure  — illegal status transition, malformed preferences
  DependencyFailure  — the storage backend could not be reached

Routers translate these into 404 / 400 / 503.  Email failures never
reach a caller: the notification layer degrades to "email not sent".
"""


class LifecycleError(Exception):
    """Base class for all domain errors raised by the core."""


class NotFoundError(LifecycleError):
    pass


class ValidationFailure(LifecycleError):
    pass


class DependencyFailure(LifecycleError):
    """Raised by the GCS store when the bucket is unreachable."""
