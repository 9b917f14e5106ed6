"""Exceptions shared across the alert store, tracker and API layer."""

from __future__ import annotations


class NotFoundError(Exception):
    """Raised when an alert or task id does not resolve."""


class AlertNotFoundError(NotFoundError):
    """No alert matches the requested id (or the store is empty)."""


class TaskNotFoundError(NotFoundError):
    """No remediation task is registered under the requested id."""
