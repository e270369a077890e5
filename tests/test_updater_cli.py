import json
import time
from pathlib import Path

import pytest

from updater import cli as cli_module
from updater.cycle import CycleResult, CycleStatus
from updater.state import CycleState, StateStore


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch) -> None:
    monkeypatch.setattr(cli_module, "_setup_logging", lambda context, verbose: None)


@pytest.mark.parametrize(
    "status, code",
    [
        (CycleStatus.UPDATED, 0),
        (CycleStatus.NOT_MODIFIED, 0),
        (CycleStatus.VALIDATION_FAILED, 2),
        (CycleStatus.ERROR, 1),
    ],
)
def test_exit_codes(status, code) -> None:
    assert cli_module.exit_code_for(CycleResult(status=status)) == code


def test_run_if_stale_skips_recent_success(tmp_path: Path, monkeypatch, capsys) -> None:
    state_path = tmp_path / "data" / "meta" / "state.json"
    StateStore(state_path).save(CycleState(last_success_at=int(time.time())))

    def fail(*args, **kwargs):  # pragma: no cover - must not be reached
        raise AssertionError("update cycle should have been skipped")

    monkeypatch.setattr(cli_module, "Updater", fail)

    code = cli_module.cli(["--working-dir", str(tmp_path), "--json", "run", "--if-stale"])

    assert code == 0
    assert json.loads(capsys.readouterr().out)["status"] == "skipped"


def test_run_reports_cycle_result(tmp_path: Path, monkeypatch, capsys) -> None:
    seen = {}

    class FakeUpdater:
        def __init__(self, context) -> None:
            seen["working_dir"] = context.working_dir

        def run_cycle(self, *, url=None):
            seen["url"] = url
            return CycleResult(status=CycleStatus.VALIDATION_FAILED, errors=["primary table is empty"])

    monkeypatch.setattr(cli_module, "Updater", FakeUpdater)

    code = cli_module.cli(["--working-dir", str(tmp_path), "run", "--url", "https://example.invalid/x.bz2"])

    assert code == 2
    assert seen == {"working_dir": tmp_path, "url": "https://example.invalid/x.bz2"}
    output = capsys.readouterr().out
    assert "status=validation_failed" in output
    assert "primary table is empty" in output


def test_status_command(tmp_path: Path, capsys) -> None:
    code = cli_module.cli(["--working-dir", str(tmp_path), "--json", "status"])

    assert code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["needs_refresh"] is True
    assert payload["state"]["last_success_at"] is None
    assert payload["catalog"] is None
    assert payload["snapshot"]["exists"] is False


def test_cleanup_command(tmp_path: Path, capsys) -> None:
    staging = tmp_path / "data" / "source" / "tmp"
    staging.mkdir(parents=True)
    (staging / "leftover.part").write_bytes(b"x")

    code = cli_module.cli(["--working-dir", str(tmp_path), "cleanup"])

    assert code == 0
    assert "removed 1 staged files" in capsys.readouterr().out
