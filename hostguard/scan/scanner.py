"""Image scanner — trivy + grype reports, last-scan summary, vuln alerts."""

from __future__ import annotations

import json
import logging
import shlex
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..alerts.store import AlertStore, Severity
from ..executor import CommandExecutor

logger = logging.getLogger(__name__)

SCAN_SOURCE = "docker-scan"


@dataclass
class ScanSummary:
    image: str
    trivy_ok: bool
    grype_ok: bool
    critical_count: int = 0
    scanned_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def count_trivy_criticals(report: dict[str, Any]) -> int:
    total = 0
    for result in report.get("Results") or []:
        for vuln in result.get("Vulnerabilities") or []:
            if str(vuln.get("Severity", "")).upper() == "CRITICAL":
                total += 1
    return total


def count_grype_criticals(report: dict[str, Any]) -> int:
    total = 0
    for match in report.get("matches") or []:
        severity = match.get("severity") or (match.get("vulnerability") or {}).get("severity", "")
        if str(severity).upper() == "CRITICAL":
            total += 1
    return total


class ImageScanner:
    """Runs trivy and grype against an image and raises an alert on criticals."""

    def __init__(
        self,
        executor: CommandExecutor,
        alerts: AlertStore,
        data_dir: Path,
        trivy_report: Path,
        grype_report: Path,
    ) -> None:
        self.executor = executor
        self.alerts = alerts
        self.summary_path = Path(data_dir) / "last_docker_scan.json"
        self.reports = {"trivy": Path(trivy_report), "grype": Path(grype_report)}
        for path in (self.summary_path, *self.reports.values()):
            path.parent.mkdir(parents=True, exist_ok=True)

    async def scan(self, image: str) -> ScanSummary:
        logger.info("Start scan for %s", image)
        quoted = shlex.quote(image)
        trivy_path = self.reports["trivy"]
        grype_path = self.reports["grype"]
        # stale reports from a previous image must not be counted
        for path in (trivy_path, grype_path):
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning("Could not clear old report %s: %s", path, e)

        tr = await self.executor.execute(
            f"trivy image --skip-update --quiet -f json -o {shlex.quote(str(trivy_path))} {quoted}"
        )
        if not tr.success:
            logger.warning("trivy err: %s", (tr.stderr or tr.stdout)[:400])

        gr = await self.executor.execute(f"grype {quoted} -o json")
        if gr.success and gr.stdout:
            try:
                grype_path.write_text(gr.stdout, encoding="utf-8")
            except OSError as e:
                logger.warning("write grype out err: %s", e)
        else:
            logger.warning("grype err: %s", (gr.stderr or gr.stdout)[:400])

        summary = ScanSummary(image=image, trivy_ok=tr.success, grype_ok=gr.success)
        summary.critical_count = self._count_criticals()
        try:
            self.summary_path.write_text(json.dumps(summary.to_dict(), indent=2), encoding="utf-8")
        except OSError:
            logger.exception("Failed to write scan summary")

        if summary.critical_count > 0:
            self.alerts.append(
                source=SCAN_SOURCE,
                checker="vuln",
                severity=Severity.HIGH.value,
                summary=f"{summary.critical_count} critical vuln(s) in {image}",
                image=image,
            )
        return summary

    def _count_criticals(self) -> int:
        total = 0
        for kind, counter in (("trivy", count_trivy_criticals), ("grype", count_grype_criticals)):
            path = self.reports[kind]
            if not path.exists():
                continue
            try:
                total += counter(json.loads(path.read_text(encoding="utf-8")))
            except (OSError, ValueError, AttributeError) as e:
                logger.warning("alert parse err (%s): %s", kind, e)
        return total

    def last_summary(self) -> dict[str, Any] | None:
        try:
            return json.loads(self.summary_path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.warning("Scan summary unreadable: %s", e)
            return None

    def read_report(self, kind: str) -> str | None:
        """Raw JSON text of the last ``trivy`` or ``grype`` report."""
        path = self.reports.get(kind)
        if path is None or not path.exists():
            return None
        return path.read_text(encoding="utf-8")
