"""Host checks — one async probe per check kind plus the dispatcher table.

Supports: package-index freshness, host identity, connection flood,
CPU load, root disk usage and firewall state. Every probe fails soft: a
failed command or unparseable output becomes ``ok=False`` with a reason.
"""

from __future__ import annotations

import logging
import os
import platform
import re
import socket
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..config import Settings
from ..executor import CommandExecutor, CommandResult

logger = logging.getLogger(__name__)


# ── Models ───────────────────────────────────────────────────────────────────


class CheckName(str, Enum):
    UPDATE_FRESHNESS = "update-freshness"
    HOST_IDENTITY = "host-identity"
    CONNECTION_FLOOD = "ddos-style-flood"
    CPU_LOAD = "cpu-load"
    DISK_USAGE = "disk-usage"
    FIREWALL_STATE = "firewall-state"


@dataclass
class CheckResult:
    """Result of a single probe in one aggregator run."""

    name: CheckName
    ok: bool
    metrics: dict[str, Any] = field(default_factory=dict)
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"ok": self.ok, **self.metrics}
        if self.reason is not None:
            d["reason"] = self.reason
        return d

    @classmethod
    def from_dict(cls, name: CheckName, data: dict[str, Any]) -> "CheckResult":
        metrics = {k: v for k, v in data.items() if k not in ("ok", "reason")}
        return cls(name=name, ok=bool(data.get("ok")), metrics=metrics, reason=data.get("reason"))


# ── Commands ─────────────────────────────────────────────────────────────────

CONNECTIONS_CMD = "ss -tn state established | sed -n '2,$p' | wc -l"
DISK_CMD = "df -P / | awk 'NR==2{print $5}'"

_FIREWALL_ACTIVE = re.compile(r"^\s*status:\s*active\b", re.IGNORECASE | re.MULTILINE)


def _command_failure(r: CommandResult) -> str:
    detail = (r.stderr or r.stdout).strip()[:400]
    return f"command failed (exit {r.exit_code}): {detail}" if detail else f"command failed (exit {r.exit_code})"


def _parse_int(text: str) -> int | None:
    try:
        return int(text.strip().rstrip("%"))
    except ValueError:
        return None


# ── Check runners ────────────────────────────────────────────────────────────


async def check_update_freshness(executor: CommandExecutor, settings: Settings) -> CheckResult:
    """Age of the last successful package index refresh."""
    stamp = settings.apt_stamp_path
    if not stamp.exists():
        return CheckResult(CheckName.UPDATE_FRESHNESS, ok=False, reason="stamp-not-found")
    age = int(time.time() - stamp.stat().st_mtime)
    return CheckResult(
        CheckName.UPDATE_FRESHNESS,
        ok=age < settings.update_max_age_seconds,
        metrics={"path": str(stamp), "age_seconds": age},
    )


async def check_host_identity(executor: CommandExecutor, settings: Settings) -> CheckResult:
    """Informational only — always ok."""
    return CheckResult(
        CheckName.HOST_IDENTITY,
        ok=True,
        metrics={
            "platform": platform.system().lower(),
            "release": platform.release(),
            "arch": platform.machine(),
            "cpus": os.cpu_count() or 1,
            "hostname": socket.gethostname(),
        },
    )


async def check_connection_flood(executor: CommandExecutor, settings: Settings) -> CheckResult:
    """Count established TCP connections against the flood threshold."""
    threshold = settings.ddos_threshold_total
    r = await executor.execute(CONNECTIONS_CMD, timeout=30)
    if not r.success:
        return CheckResult(
            CheckName.CONNECTION_FLOOD, ok=False,
            metrics={"threshold": threshold}, reason=_command_failure(r),
        )
    total = _parse_int(r.stdout or "0")
    if total is None:
        return CheckResult(
            CheckName.CONNECTION_FLOOD, ok=False,
            metrics={"threshold": threshold}, reason=f"unexpected output: {r.stdout[:200]!r}",
        )
    return CheckResult(
        CheckName.CONNECTION_FLOOD,
        ok=total < threshold,
        metrics={"total_connections": total, "threshold": threshold},
    )


async def check_cpu_load(executor: CommandExecutor, settings: Settings) -> CheckResult:
    """1-minute load average over core count, as an approximate percentage."""
    load1 = os.getloadavg()[0]
    cores = max(1, os.cpu_count() or 1)
    percent = round(load1 / cores * 100)
    threshold = settings.cpu_threshold_percent
    return CheckResult(
        CheckName.CPU_LOAD,
        ok=percent < threshold,
        metrics={"load1": load1, "cores": cores, "cpu_percent_approx": percent, "threshold": threshold},
    )


async def check_disk_usage(executor: CommandExecutor, settings: Settings) -> CheckResult:
    """Percent-full of the root filesystem."""
    r = await executor.execute(DISK_CMD, timeout=30)
    if not r.success:
        return CheckResult(CheckName.DISK_USAGE, ok=False, reason=_command_failure(r))
    percent = _parse_int(r.stdout)
    if percent is None:
        return CheckResult(
            CheckName.DISK_USAGE, ok=False, reason=f"unexpected output: {r.stdout[:200]!r}",
        )
    return CheckResult(
        CheckName.DISK_USAGE,
        ok=percent < settings.disk_threshold_percent,
        metrics={"percent": percent},
    )


async def check_firewall_state(executor: CommandExecutor, settings: Settings) -> CheckResult:
    """Whether ufw reports ``Status: active``."""
    r = await executor.execute(settings.firewall_status_command, timeout=30)
    output = (r.stdout or r.stderr).strip()
    if not r.success:
        return CheckResult(
            CheckName.FIREWALL_STATE, ok=False,
            metrics={"stdout": output[:400]}, reason=_command_failure(r),
        )
    return CheckResult(
        CheckName.FIREWALL_STATE,
        ok=bool(_FIREWALL_ACTIVE.search(r.stdout)),
        metrics={"stdout": output[:400]},
    )


CheckRunner = Callable[[CommandExecutor, Settings], Awaitable[CheckResult]]

# Dispatcher
CHECK_RUNNERS: dict[CheckName, CheckRunner] = {
    CheckName.UPDATE_FRESHNESS: check_update_freshness,
    CheckName.HOST_IDENTITY: check_host_identity,
    CheckName.CONNECTION_FLOOD: check_connection_flood,
    CheckName.CPU_LOAD: check_cpu_load,
    CheckName.DISK_USAGE: check_disk_usage,
    CheckName.FIREWALL_STATE: check_firewall_state,
}


async def execute_check(name: CheckName, executor: CommandExecutor, settings: Settings) -> CheckResult:
    """Run a check by name; any unexpected fault becomes a not-ok result."""
    runner = CHECK_RUNNERS.get(name)
    if not runner:
        return CheckResult(name, ok=False, reason=f"Unknown check: {name}")
    try:
        return await runner(executor, settings)
    except Exception as e:
        logger.warning("Check %s could not evaluate: %s", name.value, e)
        return CheckResult(name, ok=False, reason=f"{type(e).__name__}: {e}")
