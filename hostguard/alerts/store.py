"""Alert ledger — JSON-file backed, most-recent-first.

Lifecycle: open → mitigated. Alerts are never deleted; mitigation mutates
the record in place. Every read-modify-write runs under one lock and the
whole list is rewritten through an atomic rename.
"""

from __future__ import annotations

import json
import logging
import os
import threading
import time
import uuid
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from ..errors import AlertNotFoundError

logger = logging.getLogger(__name__)


class Severity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.CRITICAL: 3, Severity.HIGH: 2, Severity.MEDIUM: 1, Severity.LOW: 0}

STATUS_OPEN = "open"
STATUS_MITIGATED = "mitigated"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")


def new_alert_id() -> str:
    """Hex millisecond timestamp plus a random suffix — sorts by creation time."""
    return f"{int(time.time() * 1000):x}-{uuid.uuid4().hex[:6]}"


@dataclass
class Alert:
    """A durable record of a detected not-ok condition."""

    id: str = field(default_factory=new_alert_id)
    source: str = ""
    checker: str = ""
    severity: Severity = Severity.LOW
    summary: str = ""
    created_at: str = field(default_factory=_now)
    status: str = STATUS_OPEN
    image: str | None = None
    mitigated_at: str | None = None
    mitigation: list[dict[str, Any]] | None = None
    # caller fields with no column of their own, written back verbatim
    extras: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        extras = d.pop("extras")
        d["severity"] = self.severity.value
        return {**extras, **{k: v for k, v in d.items() if v is not None}}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Alert":
        """Build an alert from a stored or caller-supplied dict.

        Unknown keys are kept in ``extras``; an unrecognised severity reads
        as ``low``.
        """
        known = {f.name for f in fields(cls)} - {"extras"}
        kwargs = {k: v for k, v in data.items() if k in known}
        extras = {k: v for k, v in data.items() if k not in known}
        sev = kwargs.get("severity", Severity.LOW)
        if not isinstance(sev, Severity):
            try:
                sev = Severity(str(sev).lower())
            except ValueError:
                logger.warning("Unknown alert severity %r, filing as low", sev)
                sev = Severity.LOW
        kwargs["severity"] = sev
        return cls(**kwargs, extras=extras)


class AlertStore:
    """Whole-list JSON persistence for alerts."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        if not self._path.exists():
            self._write([])

    # ── File I/O (callers hold the lock) ─────────────────────────────────

    def _read(self) -> list[Alert]:
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return []
        except ValueError as e:
            logger.warning("Alert ledger unparseable (%s)", e)
            self._quarantine()
            return []
        if not isinstance(raw, list):
            logger.warning("Alert ledger is not a list")
            self._quarantine()
            return []
        return [Alert.from_dict(a) for a in raw if isinstance(a, dict)]

    def _quarantine(self) -> None:
        """Move an unreadable ledger aside so the next write cannot clobber it."""
        aside = self._path.with_name(f"{self._path.name}.corrupt-{int(time.time() * 1000)}")
        os.replace(self._path, aside)
        logger.warning("Moved unreadable alert ledger to %s; starting a new one", aside)

    def _write(self, alerts: list[Alert]) -> None:
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps([a.to_dict() for a in alerts], indent=2), encoding="utf-8")
        os.replace(tmp, self._path)

    @staticmethod
    def _resolve(alerts: list[Alert], alert_id: str | None) -> Alert:
        if alert_id:
            for a in alerts:
                if a.id == alert_id:
                    return a
            raise AlertNotFoundError(f"Alert not found: {alert_id}")
        if not alerts:
            raise AlertNotFoundError("No alerts recorded")
        return alerts[0]

    # ── Operations ───────────────────────────────────────────────────────

    def append(self, values: dict[str, Any] | None = None, **kwargs: Any) -> Alert:
        """Create an open alert from caller fields and put it at the head."""
        data: dict[str, Any] = {"id": new_alert_id(), "created_at": _now(), "status": STATUS_OPEN}
        data.update(values or {})
        data.update(kwargs)
        alert = Alert.from_dict(data)
        with self._lock:
            alerts = self._read()
            alerts.insert(0, alert)
            self._write(alerts)
        logger.info("ALERT: %s %s", alert.id, alert.summary)
        return alert

    def list(self) -> list[Alert]:
        with self._lock:
            return self._read()

    def count(self) -> int:
        return len(self.list())

    def find(self, alert_id: str) -> Alert:
        with self._lock:
            return self._resolve(self._read(), alert_id)

    def resolve(self, alert_id: str | None = None) -> Alert:
        """By id, or the most recent alert when no id is given."""
        with self._lock:
            return self._resolve(self._read(), alert_id)

    def mitigate(self, alert_id: str | None, actions: list[dict[str, Any]]) -> Alert:
        """Mark the resolved alert mitigated and attach its action log."""
        with self._lock:
            alerts = self._read()
            alert = self._resolve(alerts, alert_id)
            alert.status = STATUS_MITIGATED
            alert.mitigated_at = _now()
            alert.mitigation = list(actions)
            self._write(alerts)
        logger.info("Alert %s mitigated (%d actions)", alert.id, len(actions))
        return alert
