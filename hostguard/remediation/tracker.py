"""Remediation task tracker — background image-hardening jobs polled by id.

States: running → done | running → error. A task record is written only by
its own job; callers see deep copies through ``get``.

Hardening sequence (real mode): pull → create container → start + apt
upgrade inside it → commit as ``<image>-hardened-<ms>`` → remove container.
Every step is logged whether or not it succeeded, and a failed upgrade does
not stop the commit.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import shlex
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..errors import TaskNotFoundError
from ..executor import CommandExecutor

logger = logging.getLogger(__name__)

STATUS_RUNNING = "running"
STATUS_DONE = "done"
STATUS_ERROR = "error"

UPGRADE_SCRIPT = "apt-get update && apt-get upgrade -y"


def new_task_id() -> str:
    return f"task-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}"


@dataclass
class RemediationTask:
    """A single hardening job."""

    task_id: str
    image: str
    status: str = STATUS_RUNNING
    actions: list[dict[str, Any]] = field(default_factory=list)
    new_image: str | None = None
    result_file: str | None = None
    error: str | None = None
    when: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def terminal(self) -> bool:
        return self.status in (STATUS_DONE, STATUS_ERROR)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "taskId": self.task_id,
            "image": self.image,
            "status": self.status,
            "actions": copy.deepcopy(self.actions),
            "when": self.when,
        }
        if self.new_image is not None:
            d["newImage"] = self.new_image
        if self.result_file is not None:
            d["resultFile"] = self.result_file
        if self.error is not None:
            d["error"] = self.error
        return d


class RemediationTracker:
    """Owns the task table; exposes it only through ``start`` and ``get``."""

    def __init__(
        self,
        executor: CommandExecutor,
        data_dir: Path,
        enable_real_fix: bool = False,
        upgrade_timeout: float = 600.0,
    ) -> None:
        self.executor = executor
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.enable_real_fix = enable_real_fix
        self.upgrade_timeout = upgrade_timeout
        self._tasks: dict[str, RemediationTask] = {}
        self._handles: dict[str, asyncio.Task[None]] = {}

    def start(self, image: str) -> str:
        """Register a running task, spawn its job and return the id at once.

        Must be called from inside a running event loop.
        """
        task = RemediationTask(task_id=new_task_id(), image=image)
        self._tasks[task.task_id] = task
        handle = asyncio.get_running_loop().create_task(
            self._run(task), name=f"remediation-{task.task_id}",
        )
        self._handles[task.task_id] = handle
        handle.add_done_callback(lambda _h, tid=task.task_id: self._handles.pop(tid, None))
        logger.info("Remediation %s started for %s (real=%s)", task.task_id, image, self.enable_real_fix)
        return task.task_id

    def get(self, task_id: str) -> RemediationTask:
        task = self._tasks.get(task_id)
        if task is None:
            raise TaskNotFoundError(f"Task not found: {task_id}")
        return copy.deepcopy(task)

    def in_flight(self) -> int:
        return len(self._handles)

    async def drain(self) -> None:
        """Wait for every job still running."""
        handles = list(self._handles.values())
        if handles:
            await asyncio.gather(*handles, return_exceptions=True)

    # ── Job ──────────────────────────────────────────────────────────────

    async def _run(self, task: RemediationTask) -> None:
        status, error = STATUS_DONE, None
        try:
            if self.enable_real_fix:
                await self._harden(task)
        except Exception as e:
            logger.exception("Remediation %s failed", task.task_id)
            status, error = STATUS_ERROR, f"{type(e).__name__}: {e}"

        record = task.to_dict()
        record["status"] = status
        result_file: str | None = f"fix-{task.task_id}.json"
        record["resultFile"] = result_file
        if error is not None:
            record["error"] = error
        try:
            (self.data_dir / result_file).write_text(json.dumps(record, indent=2), encoding="utf-8")
        except OSError:
            logger.exception("Could not write result file for %s", task.task_id)
            result_file = None

        # publish terminal fields together; no await between these writes
        task.error = error
        task.result_file = result_file
        task.status = status
        logger.info("Remediation %s finished: %s", task.task_id, status)

    async def _harden(self, task: RemediationTask) -> None:
        image = shlex.quote(task.image)

        pull = await self.executor.execute(f"docker pull {image}")
        task.actions.append({"action": "docker pull", "ok": pull.success})

        created = await self.executor.execute(f"docker create {image}")
        cid = created.stdout.strip() if created.success else ""
        if not cid:
            task.actions.append({"action": "create container", "ok": False, "note": "could not create container"})
            return
        task.actions.append({"action": "create container", "ok": True, "id": cid})
        container = shlex.quote(cid)

        upgrade = await self.executor.execute(
            f"docker start {container} >/dev/null && docker exec {container} bash -c {shlex.quote(UPGRADE_SCRIPT)}",
            timeout=self.upgrade_timeout,
        )
        task.actions.append({"action": "container apt upgrade", "ok": upgrade.success})

        new_tag = f"{task.image}-hardened-{int(time.time() * 1000)}"
        commit = await self.executor.execute(f"docker commit {container} {shlex.quote(new_tag)}")
        task.actions.append({"action": "docker commit", "ok": commit.success, "newImage": new_tag})
        if commit.success:
            task.new_image = new_tag

        removed = await self.executor.execute(f"docker rm -f {container}")
        task.actions.append({"action": "remove container", "ok": removed.success})
