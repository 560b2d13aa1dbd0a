from __future__ import annotations

import json

import pytest
from typer.testing import CliRunner

from devtrail import cli
from devtrail.config import Settings
from devtrail.orchestrator.session import Explorer

from conftest import FakeReasoner, ScriptedSearch

runner = CliRunner()


@pytest.fixture
def wired(monkeypatch, settings: Settings, reasoner: FakeReasoner, twelve_items, history) -> Settings:
    reasoner.scores = {"i3": 9}
    explorer = Explorer(
        settings,
        backend=ScriptedSearch(results={"why redis?": twelve_items}),
        threads=history,
        reasoner=reasoner,
    )
    monkeypatch.setattr(cli, "load_settings", lambda: settings)
    monkeypatch.setattr(cli, "build_explorer", lambda s, history_file=None: explorer)
    return settings


def test_run_prints_answer_and_writes_audit_trail(wired: Settings) -> None:
    result = runner.invoke(cli.app, ["run", "why redis?", "--scope", "p1"])

    assert result.exit_code == 0, result.output
    assert "Final answer from 1 findings" in result.output
    (trail,) = list(wired.artifacts_dir.glob("*/events.jsonl"))
    lines = trail.read_text(encoding="utf-8").splitlines()
    assert json.loads(lines[0])["action"] == "session_started"
    assert json.loads(lines[-1])["action"] == "finalized"


def test_run_writes_answer_file(wired: Settings, tmp_path) -> None:
    out = tmp_path / "out" / "answer.md"

    result = runner.invoke(cli.app, ["run", "why redis?", "-s", "p1", "-o", str(out)])

    assert result.exit_code == 0, result.output
    assert out.read_text(encoding="utf-8") == "Final answer from 1 findings"


def test_run_without_history_source_fails(monkeypatch, settings: Settings) -> None:
    monkeypatch.setattr(cli, "load_settings", lambda: settings)

    result = runner.invoke(cli.app, ["run", "why redis?", "--scope", "p1"])

    assert result.exit_code == 1


def test_show_needs_durable_log(monkeypatch, settings: Settings) -> None:
    monkeypatch.setattr(cli, "load_settings", lambda: settings)

    result = runner.invoke(cli.app, ["show", "20240301T100000Z_abcd1234"])

    assert result.exit_code == 1
