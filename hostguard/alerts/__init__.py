"""Alert subsystem — severity model and the JSON ledger."""

from .store import Alert, AlertStore, Severity
