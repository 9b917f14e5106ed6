"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from hostguard.alerts.store import AlertStore
from hostguard.config import Settings
from hostguard.executor import CommandExecutor, CommandResult


class FakeExecutor(CommandExecutor):
    """Scripted executor: first rule whose fragment appears in the command wins."""

    def __init__(self) -> None:
        super().__init__(timeout=5, max_output_bytes=1024)
        self.rules: list[tuple[str, CommandResult]] = []
        self.calls: list[str] = []
        self.default = CommandResult(success=True, exit_code=0)

    def respond(
        self,
        fragment: str,
        stdout: str = "",
        stderr: str = "",
        exit_code: int = 0,
    ) -> None:
        self.rules.append((
            fragment,
            CommandResult(success=exit_code == 0, exit_code=exit_code, stdout=stdout, stderr=stderr),
        ))

    def time_out(self, fragment: str) -> None:
        self.rules.append((
            fragment,
            CommandResult(success=False, exit_code=-1, stderr="Command timed out after 5s"),
        ))

    async def execute(self, command, timeout=None, max_output_bytes=None) -> CommandResult:
        self.calls.append(command)
        for fragment, result in self.rules:
            if fragment in command:
                return result
        return self.default

    def called(self, fragment: str) -> list[str]:
        return [c for c in self.calls if fragment in c]


@pytest.fixture
def fake_executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Settings pointed at a temp data dir, no .env lookup."""
    return Settings(
        _env_file=None,
        data_dir=tmp_path / "data",
        logs_dir=tmp_path / "logs",
        apt_stamp_path=tmp_path / "update-success-stamp",
        trivy_report_path=tmp_path / "reports" / "trivy-last.json",
        grype_report_path=tmp_path / "reports" / "grype-last.json",
        check_interval_seconds=0,
        enable_real_fix=False,
    )


@pytest.fixture
def alert_store(tmp_path: Path) -> AlertStore:
    return AlertStore(tmp_path / "data" / "alerts.json")
