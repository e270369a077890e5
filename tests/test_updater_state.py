import json
import logging
from pathlib import Path

import pytest

from updater.errors import StateIOError
from updater.state import CycleState, StateStore


def test_missing_state_file_yields_defaults(tmp_path: Path) -> None:
    state = StateStore(tmp_path / "meta" / "state.json").load()

    assert state == CycleState()
    assert state.conditional_headers() == {}
    assert state.needs_refresh(3600, now=1000) is True


def test_corrupt_state_file_recovers(tmp_path: Path, caplog) -> None:
    path = tmp_path / "state.json"
    path.write_text("{\"etag\": ", encoding="utf-8")

    with caplog.at_level(logging.WARNING, logger="mediacatalog.updater.state"):
        state = StateStore(path).load()

    assert state == CycleState()
    assert any("corrupt" in record.getMessage() for record in caplog.records)


def test_non_object_state_file_recovers(tmp_path: Path) -> None:
    path = tmp_path / "state.json"
    path.write_text("[1, 2, 3]", encoding="utf-8")

    assert StateStore(path).load() == CycleState()


def test_mark_attempt_and_success_persist(tmp_path: Path) -> None:
    now = [1000.0]
    path = tmp_path / "meta" / "state.json"
    store = StateStore(path, clock=lambda: now[0])

    state = store.mark_attempt(store.load())
    assert StateStore(path).load().last_attempt_at == 1000
    assert StateStore(path).load().last_success_at is None

    now[0] = 2000.0
    store.mark_success(
        state,
        etag='"abc"',
        last_modified="Wed, 01 Oct 2025 10:00:00 GMT",
        row_count=42,
        max_timestamp=1999,
        source_label="filmliste-v2.db",
    )
    loaded = StateStore(path).load()
    assert loaded.last_success_at == 2000
    assert loaded.last_attempt_at == 2000
    assert loaded.last_row_count == 42
    assert loaded.last_max_timestamp == 1999
    assert loaded.source_label == "filmliste-v2.db"
    assert loaded.conditional_headers() == {
        "If-None-Match": '"abc"',
        "If-Modified-Since": "Wed, 01 Oct 2025 10:00:00 GMT",
    }
    assert json.loads(path.read_text(encoding="utf-8"))["schema_version"] == 1
    assert not (tmp_path / "meta" / "state.json.tmp").exists()


def test_success_without_new_tokens_keeps_previous_ones(tmp_path: Path) -> None:
    store = StateStore(tmp_path / "state.json", clock=lambda: 10.0)
    state = store.mark_success(CycleState(), etag='"v1"')
    store.mark_success(state, etag=None)

    assert store.load().etag == '"v1"'


def test_needs_refresh_threshold() -> None:
    state = CycleState(last_success_at=1000)

    assert state.needs_refresh(600, now=1500) is False
    assert state.needs_refresh(600, now=1601) is True


def test_save_failure_is_reported(tmp_path: Path) -> None:
    blocker = tmp_path / "meta"
    blocker.write_text("not a directory", encoding="utf-8")

    with pytest.raises(StateIOError):
        StateStore(blocker / "state.json").save(CycleState())
