"""Tests for the command executor — real subprocesses, small and fast."""

from __future__ import annotations

import asyncio

import pytest

from hostguard.executor import CommandExecutor


@pytest.fixture
def executor() -> CommandExecutor:
    return CommandExecutor(timeout=10, max_output_bytes=4096)


class TestCommandExecutor:
    @pytest.mark.asyncio
    async def test_success(self, executor: CommandExecutor) -> None:
        r = await executor.execute("echo hello")
        assert r.success is True
        assert r.exit_code == 0
        assert r.stdout.strip() == "hello"
        assert r.duration_ms >= 0

    @pytest.mark.asyncio
    async def test_nonzero_exit_is_a_result(self, executor: CommandExecutor) -> None:
        r = await executor.execute("echo oops >&2; exit 3")
        assert r.success is False
        assert r.exit_code == 3
        assert "oops" in r.stderr

    @pytest.mark.asyncio
    async def test_timeout(self, executor: CommandExecutor) -> None:
        r = await executor.execute("sleep 5", timeout=0.3)
        assert r.success is False
        assert r.exit_code == -1
        assert "timed out" in r.stderr
        assert r.duration_ms < 5000

    @pytest.mark.asyncio
    async def test_output_cap(self, executor: CommandExecutor) -> None:
        r = await executor.execute("yes | head -c 10000", max_output_bytes=100)
        assert r.success is False
        assert len(r.stdout) == 100
        assert "exceeded 100 bytes" in r.stderr

    @pytest.mark.asyncio
    async def test_missing_binary(self, executor: CommandExecutor) -> None:
        r = await executor.execute("definitely-not-a-real-binary-xyz")
        assert r.success is False
        assert r.exit_code != 0

    @pytest.mark.asyncio
    async def test_output_larger_than_pipe_buffer(self) -> None:
        executor = CommandExecutor(timeout=5, max_output_bytes=1000)
        r = await asyncio.wait_for(executor.execute("yes | head -c 500000"), timeout=15)
        assert r.success is False
        assert len(r.stdout) == 1000
        assert "exceeded 1000 bytes" in r.stderr
        assert r.duration_ms < 5000

    @pytest.mark.asyncio
    async def test_endless_output_is_cut_off(self) -> None:
        executor = CommandExecutor(timeout=5, max_output_bytes=1000)
        r = await asyncio.wait_for(executor.execute("yes"), timeout=15)
        assert r.success is False
        assert len(r.stdout) == 1000
        assert r.duration_ms < 5000

    @pytest.mark.asyncio
    async def test_stderr_flood_with_quiet_stdout(self) -> None:
        executor = CommandExecutor(timeout=5, max_output_bytes=1000)
        r = await asyncio.wait_for(executor.execute("yes >&2; sleep 30"), timeout=15)
        assert r.success is False
        assert r.stdout == ""
        assert "exceeded 1000 bytes" in r.stderr

    @pytest.mark.asyncio
    async def test_timeout_while_writing(self) -> None:
        executor = CommandExecutor(timeout=5, max_output_bytes=10 * 1024 * 1024)
        r = await asyncio.wait_for(
            executor.execute("while true; do echo tick; sleep 0.01; done", timeout=0.5), timeout=15,
        )
        assert r.success is False
        assert r.exit_code == -1
        assert "timed out" in r.stderr
