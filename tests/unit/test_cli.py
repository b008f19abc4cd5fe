"""Tests for the click command line."""

import asyncio
import json

import pytest
from click.testing import CliRunner

from conftest import make_params

from datacap_pipeline.cli import main
from datacap_pipeline.domain.application import DatacapAllocator
from datacap_pipeline.infrastructure.event_store import JsonFileEventStore
from datacap_pipeline.infrastructure.repository import ApplicationRepository


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    calls = []
    monkeypatch.setattr(
        "datacap_pipeline.observability.logger.setup_logging",
        lambda level, format: calls.append((level, format)),
    )
    return calls


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


def _write_events(path, path_resolver, *guids):
    async def _go():
        repository = ApplicationRepository(JsonFileEventStore(path), path_resolver)
        for guid in guids:
            app = DatacapAllocator.create(make_params(guid), path_resolver=path_resolver)
            app.approve_kyc({})
            await repository.save(app)

    asyncio.run(_go())


class TestAuditOutcome:
    @pytest.mark.parametrize(
        "previous, current, expected",
        [("5", "10", "DOUBLE"), ("10", "5", "THROTTLE"), ("5", "5", "MATCH"), ("0", "5", "UNKNOWN")],
    )
    def test_classifies(self, runner, previous, current, expected):
        result = runner.invoke(main, ["audit-outcome", previous, current])

        assert result.exit_code == 0
        assert result.output.strip() == expected

    def test_logging_configured_from_settings(self, runner, quiet_logging):
        runner.invoke(main, ["audit-outcome", "1", "2"])
        assert quiet_logging == [("INFO", "json")]


class TestResolvePath:
    def test_rkh(self, runner):
        result = runner.invoke(main, ["resolve-path", "rkh"])

        assert result.exit_code == 0
        payload = json.loads(result.output)
        assert payload["pathway"] == "RKH"
        assert payload["address"] == "f080"
        assert payload["is_meta_allocator"] is False

    def test_meta_allocator(self, runner):
        payload = json.loads(runner.invoke(main, ["resolve-path", "AMA"]).output)
        assert payload["pathway"] == "AMA"
        assert payload["audit_type"] == "Automated"
        assert payload["is_meta_allocator"] is True

    def test_unknown_type(self, runner):
        result = runner.invoke(main, ["resolve-path", "nope"])

        assert result.exit_code != 0
        assert "Error" in result.output


class TestReplay:
    def test_lists_applications(self, runner, tmp_path, path_resolver):
        events = tmp_path / "events.jsonl"
        _write_events(events, path_resolver, "app-a", "app-b")

        result = runner.invoke(main, ["replay", "--events", str(events)])

        assert result.exit_code == 0
        lines = result.output.strip().splitlines()
        assert lines[0].startswith("app-a")
        assert "GOVERNANCE_REVIEW_PHASE" in lines[1]

    def test_single_application(self, runner, tmp_path, path_resolver):
        events = tmp_path / "events.jsonl"
        _write_events(events, path_resolver, "app-a")

        result = runner.invoke(main, ["replay", "--events", str(events), "--application", "app-a"])

        assert result.exit_code == 0
        assert json.loads(result.output)["guid"] == "app-a"

    def test_missing_application(self, runner, tmp_path):
        result = runner.invoke(
            main, ["replay", "--events", str(tmp_path / "none.jsonl"), "--application", "x"]
        )

        assert result.exit_code != 0
        assert "No events for application x" in result.output
