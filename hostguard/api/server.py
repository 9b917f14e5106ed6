"""FastAPI server — wires the core components into ``app.state``."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from hostguard import __version__
from hostguard.alerts.store import AlertStore
from hostguard.api.routes import router
from hostguard.chat import ChatAssistant
from hostguard.config import Settings, settings as default_settings
from hostguard.executor import CommandExecutor
from hostguard.health.aggregator import HealthAggregator
from hostguard.health.scheduler import HealthScheduler
from hostguard.mitigation.dispatcher import MitigationDispatcher
from hostguard.remediation.tracker import RemediationTracker
from hostguard.scan.scanner import ImageScanner

logger = logging.getLogger(__name__)


def build_components(cfg: Settings, executor: CommandExecutor | None = None) -> dict[str, Any]:
    """Construct the core services for one process."""
    executor = executor or CommandExecutor(timeout=cfg.command_timeout, max_output_bytes=cfg.max_output_bytes)
    cfg.data_dir.mkdir(parents=True, exist_ok=True)

    alert_store = AlertStore(cfg.data_dir / "alerts.json")
    aggregator = HealthAggregator(executor, alert_store, cfg)
    scanner = ImageScanner(
        executor, alert_store, cfg.data_dir,
        trivy_report=cfg.trivy_report_path, grype_report=cfg.grype_report_path,
    )
    return {
        "executor": executor,
        "alert_store": alert_store,
        "aggregator": aggregator,
        "scheduler": HealthScheduler(aggregator, interval=cfg.check_interval_seconds),
        "dispatcher": MitigationDispatcher(alert_store, executor, enable_real_fix=cfg.enable_real_fix),
        "tracker": RemediationTracker(
            executor, cfg.data_dir,
            enable_real_fix=cfg.enable_real_fix, upgrade_timeout=cfg.command_timeout,
        ),
        "scanner": scanner,
        "chat": ChatAssistant(aggregator, alert_store, scanner),
    }


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Initialize shared resources on startup."""
    cfg: Settings = app.state.settings
    components = build_components(cfg, executor=getattr(app.state, "executor", None))
    for name, component in components.items():
        setattr(app.state, name, component)

    logger.info(
        "Server started on port %s (ENABLE_REAL_FIX=%s, data=%s)",
        cfg.port, cfg.enable_real_fix, cfg.data_dir,
    )

    scheduler: HealthScheduler = app.state.scheduler
    try:
        await scheduler.start()
    except Exception:
        logger.exception("Health scheduler failed to start")

    yield

    # Shutdown — running hardening jobs and chat scans finish; nothing is cancelled
    await scheduler.stop()
    await app.state.tracker.drain()
    await app.state.chat.drain()


def create_app(settings: Settings | None = None, executor: CommandExecutor | None = None) -> FastAPI:
    app = FastAPI(
        title="hostguard - DevSecOps companion",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings or default_settings
    if executor is not None:
        app.state.executor = executor

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router, prefix="/api")

    @app.get("/health")
    def health() -> dict[str, bool]:
        return {"ok": True}

    return app


app = create_app()
