"""Keyword chat assistant — scan images, summarize health, count alerts."""

from __future__ import annotations

import asyncio
import json
import logging
import re

from .alerts.store import AlertStore, Severity
from .health.aggregator import HealthAggregator
from .scan.scanner import SCAN_SOURCE, ImageScanner

logger = logging.getLogger(__name__)

_GREETING = re.compile(r"^(hi|hello|hey|salut|سلام|مرحبا)", re.IGNORECASE)
_IMAGE_REF = re.compile(r"[a-z0-9/\-._]+:[a-z0-9\-._]+", re.IGNORECASE)

HELP = "You can ask me to 'scan <image>', 'show van', or 'alerts'."


class ChatAssistant:
    def __init__(self, aggregator: HealthAggregator, alerts: AlertStore, scanner: ImageScanner) -> None:
        self.aggregator = aggregator
        self.alerts = alerts
        self.scanner = scanner
        self._scans: set[asyncio.Task[None]] = set()

    async def reply(self, message: str) -> str:
        text = (message or "").strip()
        if not text:
            return "Say something — I'm listening."
        t = text.lower()

        if _GREETING.match(t):
            return "Hello! I'm your DevSecOps assistant. Ask me to 'scan <image>' or 'show van' or 'alerts'."
        if "how are you" in t:
            return "I'm a dashboard assistant — ready to scan and mitigate."

        if "scan" in t:
            m = _IMAGE_REF.search(t)
            if not m:
                return "Tell me the image name e.g. 'scan nginx:latest'."
            image = m.group(0)
            self._start_scan(image)
            return f"Started scan for {image}. Use Docker Scan tab to see results."

        if "van" in t:
            snapshot = await self.aggregator.run_all_checks()
            return "VAN snapshot: " + json.dumps(snapshot.to_dict())[:500]
        if "alerts" in t:
            return f"There are {self.alerts.count()} alert(s)."

        return f'I understood: "{text}". {HELP}'

    async def drain(self) -> None:
        if self._scans:
            await asyncio.gather(*self._scans, return_exceptions=True)

    def _start_scan(self, image: str) -> None:
        task = asyncio.get_running_loop().create_task(self._scan(image), name=f"chat-scan-{image}")
        self._scans.add(task)
        task.add_done_callback(self._scans.discard)

    async def _scan(self, image: str) -> None:
        try:
            await self.scanner.scan(image)
            self.alerts.append(
                source=SCAN_SOURCE,
                checker="scan",
                severity=Severity.LOW.value,
                summary=f"Scanned {image} via chat",
                image=image,
            )
        except Exception:
            logger.exception("chat-scan err for %s", image)
