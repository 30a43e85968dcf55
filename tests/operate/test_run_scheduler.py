"""Tests for the run_scheduler operate CLI."""

import json
from pathlib import Path

import pytest

from tools.operate import run_scheduler
from tools.operate.run_scheduler import main, parse_args

SAMPLE_FIXTURE = Path(__file__).resolve().parents[2] / "tools" / "operate" / "fixtures" / "scheduler_sample.yaml"


@pytest.fixture(autouse=True)
def _keep_stdout_clean(monkeypatch):
    # JSON log handler writes to stdout; keep it out of the printed report
    monkeypatch.setattr(run_scheduler, "init_observability", lambda **kwargs: None)


def test_parse_args_defaults():
    args = parse_args([])
    assert not args.once
    assert not args.dry_run
    assert args.fixtures is None


def test_once_with_fixtures_prints_report(capsys):
    exit_code = main(["--once", "--dry-run", "--fixtures", str(SAMPLE_FIXTURE)])

    assert exit_code == 0
    report = json.loads(capsys.readouterr().out)
    assert report["rules_loaded"] == 3
    assert report["error"] is None
    outcomes = {o["rule_id"]: o for o in report["outcomes"]}
    # The broadcast rule is long past its schedule and has never run
    assert outcomes["rule-broadcast"]["succeeded"] == 1


def test_missing_fixture(tmp_path, capsys):
    assert main(["--once", "--fixtures", str(tmp_path / "missing.yaml")]) == 2
    assert "Fixture not found" in capsys.readouterr().err
