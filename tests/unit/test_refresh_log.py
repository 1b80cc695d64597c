from pathlib import Path

import pytest

from roadrollup.common.errors import LogError
from roadrollup.common.models import RefreshLogEntry
from roadrollup.storage.refresh_log import RefreshLog, append_best_effort


def _entry(log_id: str, district_id: str = "d1", created_at: str = "2026-03-02T10:00:00.000+00:00") -> RefreshLogEntry:
    return RefreshLogEntry(
        log_id=log_id,
        district_id=district_id,
        operation_type="complete_refresh",
        records_processed=12,
        duration_seconds=0.5,
        status="success",
        source_data_version="v1",
        refresh_date="2026-03-02",
        created_at=created_at,
    )


def test_entries_are_appended_and_filtered(tmp_path: Path):
    refresh_log = RefreshLog(tmp_path / "refresh_log.jsonl")
    refresh_log.append(_entry("b", created_at="2026-03-02T11:00:00.000+00:00"))
    refresh_log.append(_entry("a"))
    refresh_log.append(_entry("c", district_id="d2"))

    assert [row["log_id"] for row in refresh_log.entries()] == ["a", "c", "b"]
    assert [row["log_id"] for row in refresh_log.entries("d1")] == ["a", "b"]


def test_append_best_effort_swallows_log_errors(monkeypatch, tmp_path: Path, quiet_logger):
    refresh_log = RefreshLog(tmp_path / "refresh_log.jsonl")

    def broken(_entry):
        raise LogError("disk full")

    monkeypatch.setattr(refresh_log, "append", broken)

    assert append_best_effort(refresh_log, _entry("a"), quiet_logger) is False
    assert refresh_log.entries() == []


def test_unwritable_log_raises_log_error(tmp_path: Path):
    blocker = tmp_path / "blocker"
    blocker.write_text("file", encoding="utf-8")
    refresh_log = RefreshLog(blocker / "refresh_log.jsonl")

    with pytest.raises(LogError):
        refresh_log.append(_entry("a"))
