"""Entry point for hostguard — `hostguard serve | check | alerts`."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

import uvicorn
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from hostguard.alerts.store import AlertStore
from hostguard.config import Settings, settings
from hostguard.executor import CommandExecutor
from hostguard.health.aggregator import HealthAggregator, Snapshot

console = Console()


def configure_logging(cfg: Settings) -> None:
    """Console plus ``<logs_dir>/server.log``."""
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    try:
        cfg.logs_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(cfg.logs_dir / "server.log", encoding="utf-8"))
    except OSError as e:
        console.print(f"[yellow]File logging disabled: {e}[/yellow]")
    logging.basicConfig(
        level=getattr(logging, cfg.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        handlers=handlers,
    )


def run_server() -> None:
    """Start the FastAPI server."""
    mode = "[red]REAL[/red]" if settings.enable_real_fix else "[green]simulated[/green]"
    console.print(
        Panel.fit(
            f"[bold]hostguard API[/bold]\n"
            f"Bind:  {settings.api_host}:{settings.port}\n"
            f"Fixes: {mode}\n"
            f"Data:  {settings.data_dir}",
            border_style="green",
        )
    )
    uvicorn.run(
        "hostguard.api.server:app",
        host=settings.api_host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


def _print_snapshot(snapshot: Snapshot) -> None:
    table = Table(title=f"Health snapshot {snapshot.timestamp}")
    table.add_column("Check")
    table.add_column("OK")
    table.add_column("Details")
    for name, result in snapshot.results.items():
        ok = "[green]yes[/green]" if result.ok else "[red]no[/red]"
        details = ", ".join(f"{k}={v}" for k, v in result.metrics.items() if k != "stdout")
        if result.reason:
            details = f"{details} reason={result.reason}".strip()
        table.add_row(name.value, ok, details)
    console.print(table)


def run_checks() -> int:
    """Run every check once, print the snapshot, exit non-zero if any failed."""
    executor = CommandExecutor(timeout=settings.command_timeout, max_output_bytes=settings.max_output_bytes)
    store = AlertStore(settings.data_dir / "alerts.json")
    aggregator = HealthAggregator(executor, store, settings)
    snapshot = asyncio.run(aggregator.run_all_checks())
    _print_snapshot(snapshot)
    return 1 if snapshot.failing() else 0


def list_alerts(limit: int) -> None:
    store = AlertStore(settings.data_dir / "alerts.json")
    table = Table(title="Alerts (most recent first)")
    for col in ("ID", "Created", "Severity", "Status", "Checker", "Summary"):
        table.add_column(col)
    for a in store.list()[:limit]:
        table.add_row(a.id, a.created_at, a.severity.value, a.status, a.checker, a.summary)
    console.print(table)


def main() -> None:
    parser = argparse.ArgumentParser(description="hostguard DevSecOps companion")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("serve", help="Start the API server")
    sub.add_parser("check", help="Run all host checks once")
    alerts_parser = sub.add_parser("alerts", help="List recorded alerts")
    alerts_parser.add_argument("--limit", type=int, default=20)

    args = parser.parse_args()
    configure_logging(settings)

    if args.command == "serve":
        run_server()
    elif args.command == "check":
        sys.exit(run_checks())
    elif args.command == "alerts":
        list_alerts(args.limit)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
