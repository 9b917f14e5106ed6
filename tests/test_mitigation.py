"""Tests for the mitigation dispatcher — simulated and real modes."""

from __future__ import annotations

import pytest

from hostguard.alerts.store import AlertStore
from hostguard.errors import AlertNotFoundError
from hostguard.mitigation.dispatcher import MitigationDispatcher


@pytest.fixture
def simulated(alert_store, fake_executor) -> MitigationDispatcher:
    return MitigationDispatcher(alert_store, fake_executor, enable_real_fix=False)


@pytest.fixture
def real(alert_store, fake_executor) -> MitigationDispatcher:
    return MitigationDispatcher(alert_store, fake_executor, enable_real_fix=True)


class TestPolicySelection:
    @pytest.mark.asyncio
    async def test_flood_suggestion(self, simulated, alert_store: AlertStore, fake_executor) -> None:
        alert_store.append(source="van", checker="ddos-style-flood", severity="high", summary="flood")
        outcome = await simulated.mitigate()
        assert outcome.results[0]["action"] == "suggest"
        assert "ufw" in outcome.results[0]["note"]
        assert fake_executor.calls == []

    @pytest.mark.asyncio
    async def test_legacy_cpu_checker(self, simulated, alert_store: AlertStore) -> None:
        alert_store.append(source="van", checker="load", summary="busy")
        outcome = await simulated.mitigate()
        assert "CPU" in outcome.results[0]["note"]

    @pytest.mark.asyncio
    async def test_vuln_by_source(self, simulated, alert_store: AlertStore) -> None:
        alert_store.append(source="docker-scan", checker="scan", summary="s", image="app:1.0")
        outcome = await simulated.mitigate()
        assert "trivy/grype" in outcome.results[0]["note"]

    @pytest.mark.asyncio
    async def test_unknown_is_noop(self, simulated, alert_store: AlertStore) -> None:
        alert_store.append(source="van", checker="disk-usage", summary="disk")
        outcome = await simulated.mitigate()
        assert outcome.results == [
            {"action": "noop", "note": "No automated mitigation defined for this alert type"}
        ]


class TestMitigate:
    @pytest.mark.asyncio
    async def test_marks_alert_mitigated(self, simulated, alert_store: AlertStore) -> None:
        a = alert_store.append(source="van", checker="cpu-load", summary="cpu")
        outcome = await simulated.mitigate(a.id)
        assert outcome.alert.id == a.id
        assert outcome.alert.status == "mitigated"
        assert outcome.alert.mitigation == outcome.results
        stored = alert_store.find(a.id)
        assert stored.status == "mitigated"
        assert stored.mitigated_at >= stored.created_at

    @pytest.mark.asyncio
    async def test_without_id_takes_most_recent(self, simulated, alert_store: AlertStore) -> None:
        b = alert_store.append(summary="B")
        a = alert_store.append(summary="A")
        outcome = await simulated.mitigate()
        assert outcome.alert.id == a.id
        assert alert_store.find(b.id).status == "open"

    @pytest.mark.asyncio
    async def test_empty_store(self, simulated) -> None:
        with pytest.raises(AlertNotFoundError):
            await simulated.mitigate()

    @pytest.mark.asyncio
    async def test_unknown_id(self, simulated, alert_store: AlertStore) -> None:
        alert_store.append(summary="x")
        with pytest.raises(AlertNotFoundError):
            await simulated.mitigate("does-not-exist")

    @pytest.mark.asyncio
    async def test_outcome_dict(self, simulated, alert_store: AlertStore) -> None:
        alert_store.append(summary="x")
        d = (await simulated.mitigate()).to_dict()
        assert d["alert"]["status"] == "mitigated"
        assert isinstance(d["results"], list)


class TestRealMode:
    @pytest.mark.asyncio
    async def test_flood_enables_firewall(self, real, alert_store: AlertStore, fake_executor) -> None:
        fake_executor.respond("ufw --force enable", stdout="Firewall is active and enabled on system startup")
        alert_store.append(source="van", checker="ddos-style-flood", summary="flood")
        outcome = await real.mitigate()
        assert fake_executor.called("ufw --force enable")
        assert outcome.results[0]["action"] == "ufw enable"
        assert outcome.results[0]["ok"] is True
        assert "active" in outcome.results[0]["out"]

    @pytest.mark.asyncio
    async def test_cpu_lists_top_processes(self, real, alert_store: AlertStore, fake_executor) -> None:
        fake_executor.respond("ps -eo", stdout="PID COMMAND %CPU\n1 busy 99.0\n")
        alert_store.append(source="van", checker="cpu-load", summary="cpu")
        outcome = await real.mitigate()
        assert outcome.results[0]["action"] == "top-cpu"
        assert "busy" in outcome.results[0]["out"]

    @pytest.mark.asyncio
    async def test_vuln_repulls_image(self, real, alert_store: AlertStore, fake_executor) -> None:
        alert_store.append(source="docker-scan", checker="vuln", summary="crit", image="app:1.0")
        outcome = await real.mitigate()
        assert fake_executor.calls == ["docker pull app:1.0"]
        assert outcome.results[0]["ok"] is True

    @pytest.mark.asyncio
    async def test_vuln_without_image(self, real, alert_store: AlertStore, fake_executor) -> None:
        alert_store.append(source="docker-scan", checker="vuln", summary="crit")
        outcome = await real.mitigate()
        assert fake_executor.calls == []
        assert outcome.results[0]["ok"] is False

    @pytest.mark.asyncio
    async def test_failed_command_reported(self, real, alert_store: AlertStore, fake_executor) -> None:
        fake_executor.respond("ufw", stderr="sudo: a password is required", exit_code=1)
        alert_store.append(source="van", checker="ddos", summary="flood")
        outcome = await real.mitigate()
        assert outcome.results[0]["ok"] is False
        assert "password" in outcome.results[0]["out"]
        assert outcome.alert.status == "mitigated"

    @pytest.mark.asyncio
    async def test_policy_fault_recorded(self, real, alert_store: AlertStore, fake_executor) -> None:
        async def broken(command, timeout=None, max_output_bytes=None):
            raise RuntimeError("executor exploded")

        fake_executor.execute = broken
        alert_store.append(source="van", checker="cpu-load", summary="cpu")
        outcome = await real.mitigate()
        assert outcome.results == [{"action": "error", "error": "RuntimeError: executor exploded"}]
        assert outcome.alert.status == "mitigated"
