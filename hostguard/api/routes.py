"""API routes for checks, alerts, mitigation, hardening tasks, scans and chat.

Endpoints:
  GET  /api/van                           — run all checks, return snapshot
  GET  /api/overview                      — snapshot + last scan + alert count
  GET  /api/alerts                        — alert ledger, most recent first
  POST /api/alerts/mitigate               — mitigate by id (or most recent)
  POST /api/devsecops/fix-image           — start a hardening task
  GET  /api/devsecops/fix-result/{taskId} — poll a hardening task
  POST /api/scan/docker                   — trivy + grype scan of an image
  GET  /api/scan/{trivy,grype}-report     — raw scanner report
  GET  /api/scan/last-summary             — last scan summary
  POST /api/chat                          — keyword assistant
"""

from __future__ import annotations

import logging
import socket
from typing import Any

from fastapi import APIRouter, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from hostguard.errors import AlertNotFoundError, TaskNotFoundError

logger = logging.getLogger(__name__)

router = APIRouter()


# ── Request models ───────────────────────────────────────────────────────


class MitigateBody(BaseModel):
    id: str | None = None


class ImageBody(BaseModel):
    image: str | None = None


class ChatBody(BaseModel):
    message: str = ""


def _require_image(body: ImageBody) -> str:
    image = (body.image or "").strip()
    if not image:
        raise HTTPException(status_code=400, detail="image required")
    return image


# ── Health checks ────────────────────────────────────────────────────────


@router.get("/van")
async def run_checks(request: Request) -> dict[str, Any]:
    snapshot = await request.app.state.aggregator.run_all_checks()
    return {"ok": True, "results": snapshot.to_dict()}


@router.get("/overview")
async def overview(request: Request) -> dict[str, Any]:
    state = request.app.state
    try:
        van = (await state.aggregator.run_all_checks()).to_dict()
    except Exception:
        logger.exception("Overview health run failed")
        van = None
    return {
        "ok": True,
        "host": socket.gethostname(),
        "van": van,
        "last_scan": state.scanner.last_summary(),
        "alerts_count": state.alert_store.count(),
    }


# ── Alerts ───────────────────────────────────────────────────────────────


@router.get("/alerts")
def list_alerts(request: Request) -> list[dict[str, Any]]:
    return [a.to_dict() for a in request.app.state.alert_store.list()]


@router.post("/alerts/mitigate")
async def mitigate_alert(request: Request, body: MitigateBody | None = None) -> dict[str, Any]:
    alert_id = body.id if body else None
    try:
        outcome = await request.app.state.dispatcher.mitigate(alert_id)
    except AlertNotFoundError:
        raise HTTPException(status_code=404, detail="no alert found")
    return {"ok": True, **outcome.to_dict()}


# ── Hardening tasks ──────────────────────────────────────────────────────


@router.post("/devsecops/fix-image")
async def fix_image(body: ImageBody, request: Request) -> dict[str, Any]:
    image = _require_image(body)
    task_id = request.app.state.tracker.start(image)
    return {"ok": True, "message": "Auto-fix started", "taskId": task_id}


@router.get("/devsecops/fix-result/{task_id}")
def fix_result(task_id: str, request: Request) -> dict[str, Any]:
    try:
        return request.app.state.tracker.get(task_id).to_dict()
    except TaskNotFoundError:
        raise HTTPException(status_code=404, detail="Task not found")


# ── Scans ────────────────────────────────────────────────────────────────


@router.post("/scan/docker")
async def scan_docker(body: ImageBody, request: Request) -> dict[str, Any]:
    image = _require_image(body)
    summary = await request.app.state.scanner.scan(image)
    return {
        "ok": True,
        "image": image,
        "trivy": summary.trivy_ok,
        "grype": summary.grype_ok,
        "critical_count": summary.critical_count,
    }


def _report(request: Request, kind: str) -> Response:
    try:
        text = request.app.state.scanner.read_report(kind)
    except OSError as e:
        return JSONResponse(status_code=500, content={"error": str(e)})
    if text is None:
        return JSONResponse(status_code=404, content={"found": False})
    return Response(content=text, media_type="application/json")


@router.get("/scan/trivy-report")
def trivy_report(request: Request) -> Response:
    return _report(request, "trivy")


@router.get("/scan/grype-report")
def grype_report(request: Request) -> Response:
    return _report(request, "grype")


@router.get("/scan/last-summary")
def last_summary(request: Request) -> dict[str, Any]:
    summary = request.app.state.scanner.last_summary()
    if summary is None:
        return {"ok": True, "note": "no-scan"}
    return summary


# ── Chat ─────────────────────────────────────────────────────────────────


@router.post("/chat")
async def chat(body: ChatBody, request: Request) -> dict[str, str]:
    return {"reply": await request.app.state.chat.reply(body.message)}
