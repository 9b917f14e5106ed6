"""Health aggregator — runs every registered check, caches the snapshot,
raises one alert per not-ok result.

No deduplication: a condition that stays bad raises a
new alert on every run.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..alerts.store import Alert, AlertStore, Severity
from ..config import Settings
from ..executor import CommandExecutor
from .engine import CHECK_RUNNERS, CheckName, CheckResult, execute_check

logger = logging.getLogger(__name__)

ALERT_SOURCE = "van"

CHECK_SEVERITY: dict[CheckName, Severity] = {
    CheckName.UPDATE_FRESHNESS: Severity.LOW,
    CheckName.HOST_IDENTITY: Severity.LOW,
    CheckName.CONNECTION_FLOOD: Severity.HIGH,
    CheckName.CPU_LOAD: Severity.HIGH,
    CheckName.DISK_USAGE: Severity.HIGH,
    CheckName.FIREWALL_STATE: Severity.MEDIUM,
}


@dataclass
class Snapshot:
    """Point-in-time results of one full run of all checks."""

    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    results: dict[CheckName, CheckResult] = field(default_factory=dict)

    def failing(self) -> list[CheckResult]:
        return [r for r in self.results.values() if not r.ok]

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "results": {name.value: r.to_dict() for name, r in self.results.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Snapshot":
        results: dict[CheckName, CheckResult] = {}
        for key, value in (data.get("results") or {}).items():
            try:
                name = CheckName(key)
            except ValueError:
                continue
            results[name] = CheckResult.from_dict(name, value)
        return cls(timestamp=data.get("timestamp", ""), results=results)


def alert_summary(result: CheckResult) -> str:
    """Human text for the alert raised by a not-ok check."""
    m = result.metrics
    if result.reason:
        return f"{result.name.value} check failed: {result.reason}"
    if result.name is CheckName.CONNECTION_FLOOD:
        return f"DDoS suspected: {m.get('total_connections')} established connections"
    if result.name is CheckName.CPU_LOAD:
        return f"High CPU approx {m.get('cpu_percent_approx')}%"
    if result.name is CheckName.DISK_USAGE:
        return f"Disk usage {m.get('percent')}%"
    if result.name is CheckName.FIREWALL_STATE:
        return "Firewall not active"
    if result.name is CheckName.UPDATE_FRESHNESS:
        return f"Package index last refreshed {m.get('age_seconds')}s ago"
    return f"{result.name.value} not ok"


class HealthAggregator:
    """Runs all checks concurrently and turns failures into alerts."""

    def __init__(
        self,
        executor: CommandExecutor,
        alerts: AlertStore,
        settings: Settings,
        snapshot_path: Path | None = None,
    ) -> None:
        self.executor = executor
        self.alerts = alerts
        self.settings = settings
        self.snapshot_path = snapshot_path or settings.data_dir / "van_cache.json"
        self.snapshot_path.parent.mkdir(parents=True, exist_ok=True)

    async def run_all_checks(self) -> Snapshot:
        names = list(CHECK_RUNNERS)
        results = await asyncio.gather(
            *(execute_check(name, self.executor, self.settings) for name in names)
        )
        snapshot = Snapshot(results=dict(zip(names, results)))
        self._persist(snapshot)

        for result in snapshot.failing():
            self._raise_alert(result)

        logger.info(
            "Health run complete: %d checks, %d not ok",
            len(snapshot.results), len(snapshot.failing()),
        )
        return snapshot

    def last_snapshot(self) -> Snapshot | None:
        """The cached snapshot from the most recent run, if any."""
        try:
            return Snapshot.from_dict(json.loads(self.snapshot_path.read_text(encoding="utf-8")))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.warning("Snapshot cache unreadable: %s", e)
            return None

    def _persist(self, snapshot: Snapshot) -> None:
        try:
            self.snapshot_path.write_text(json.dumps(snapshot.to_dict(), indent=2), encoding="utf-8")
        except OSError:
            logger.exception("Failed to write snapshot cache %s", self.snapshot_path)

    def _raise_alert(self, result: CheckResult) -> Alert:
        return self.alerts.append(
            source=ALERT_SOURCE,
            checker=result.name.value,
            severity=CHECK_SEVERITY.get(result.name, Severity.LOW).value,
            summary=alert_summary(result),
        )
