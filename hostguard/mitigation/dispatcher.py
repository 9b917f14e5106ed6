"""Mitigation dispatcher — picks a policy per alert category and closes the alert.

Real mode runs the remediation command; simulated mode records a suggestion.
Either way the ordered action log is attached to the alert.
"""

from __future__ import annotations

import logging
import shlex
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from ..alerts.store import Alert, AlertStore
from ..executor import CommandExecutor
from ..health.engine import CheckName

logger = logging.getLogger(__name__)

FLOOD_CHECKERS = {CheckName.CONNECTION_FLOOD.value, "ddos"}
CPU_CHECKERS = {CheckName.CPU_LOAD.value, "cpu", "load"}
SCAN_SOURCE = "docker-scan"
VULN_CHECKER = "vuln"

UFW_ENABLE_CMD = "sudo -n ufw --force enable"
TOP_CPU_CMD = "ps -eo pid,comm,%cpu --sort=-%cpu | head -n 6"

ActionLog = list[dict[str, Any]]


@dataclass
class MitigationOutcome:
    alert: Alert
    results: ActionLog

    def to_dict(self) -> dict[str, Any]:
        return {"alert": self.alert.to_dict(), "results": self.results}


class MitigationDispatcher:
    """Maps ``(checker, source)`` to a remediation policy."""

    def __init__(self, store: AlertStore, executor: CommandExecutor, enable_real_fix: bool = False) -> None:
        self.store = store
        self.executor = executor
        self.enable_real_fix = enable_real_fix

    def select_policy(self, alert: Alert) -> Callable[[Alert], Awaitable[ActionLog]]:
        if alert.checker in FLOOD_CHECKERS:
            return self._mitigate_flood
        if alert.checker in CPU_CHECKERS:
            return self._mitigate_cpu
        if alert.source == SCAN_SOURCE or alert.checker == VULN_CHECKER:
            return self._mitigate_vuln
        return self._noop

    async def mitigate(self, alert_id: str | None = None) -> MitigationOutcome:
        """Run the policy for the alert (most recent if no id) and mark it mitigated.

        Raises AlertNotFoundError when nothing resolves.
        """
        alert = self.store.resolve(alert_id)
        logger.info("Mitigation requested for alert %s real=%s", alert.id, self.enable_real_fix)

        policy = self.select_policy(alert)
        try:
            results = await policy(alert)
        except Exception as e:
            logger.exception("Mitigation policy failed for alert %s", alert.id)
            results = [{"action": "error", "error": f"{type(e).__name__}: {e}"}]

        updated = self.store.mitigate(alert.id, results)
        return MitigationOutcome(alert=updated, results=results)

    # ── Policies ─────────────────────────────────────────────────────────

    async def _mitigate_flood(self, alert: Alert) -> ActionLog:
        if not self.enable_real_fix:
            return [{"action": "suggest", "note": "Enable ufw, add rate-limiting, investigate heavy IPs"}]
        r = await self.executor.execute(UFW_ENABLE_CMD)
        return [{"action": "ufw enable", "ok": r.success, "out": (r.stdout or r.stderr)[:400]}]

    async def _mitigate_cpu(self, alert: Alert) -> ActionLog:
        if not self.enable_real_fix:
            return [{
                "action": "suggest",
                "note": "Investigate top CPU processes; consider restarting service or scaling resources",
            }]
        r = await self.executor.execute(TOP_CPU_CMD)
        return [{"action": "top-cpu", "ok": r.success, "out": (r.stdout or r.stderr)[:800]}]

    async def _mitigate_vuln(self, alert: Alert) -> ActionLog:
        if not self.enable_real_fix:
            return [{"action": "suggest", "note": "Pull image and run trivy/grype; rebuild with patched base"}]
        if not alert.image:
            return [{"action": "docker pull", "ok": False, "note": "alert has no image to pull"}]
        r = await self.executor.execute(f"docker pull {shlex.quote(alert.image)}")
        return [{"action": "docker pull", "ok": r.success, "out": (r.stdout or r.stderr)[:800]}]

    async def _noop(self, alert: Alert) -> ActionLog:
        return [{"action": "noop", "note": "No automated mitigation defined for this alert type"}]
