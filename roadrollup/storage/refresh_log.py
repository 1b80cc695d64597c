"""Append-only refresh log."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any

from roadrollup.common.errors import LogError
from roadrollup.common.fs import append_jsonl, read_jsonl
from roadrollup.common.logging import log_event
from roadrollup.common.models import RefreshLogEntry

LOG_FILENAME = "refresh_log.jsonl"


class RefreshLog:
    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = threading.Lock()

    @classmethod
    def in_store(cls, store_root: Path) -> "RefreshLog":
        return cls(store_root / LOG_FILENAME)

    def append(self, entry: RefreshLogEntry) -> None:
        with self._lock:
            try:
                append_jsonl(self.path, [entry.to_dict()])
            except OSError as exc:
                raise LogError(f"Unable to append refresh log entry {entry.log_id}: {exc}") from exc

    def entries(self, district_id: str | None = None) -> list[dict[str, Any]]:
        rows = read_jsonl(self.path)
        if district_id is not None:
            rows = [row for row in rows if row.get("district_id") == district_id]
        # Stable sort: entries sharing a timestamp keep their append order.
        return sorted(rows, key=lambda row: row.get("created_at") or "")


def append_best_effort(refresh_log: RefreshLog, entry: RefreshLogEntry, logger: logging.Logger) -> bool:
    """Write ``entry``; a failure is reported but never undoes committed data."""
    try:
        refresh_log.append(entry)
    except LogError as exc:
        log_event(
            logger,
            f"refresh log write failed: {exc}",
            run_id=entry.run_id,
            stage="refresh",
            district=entry.district_id,
            event="LOG_WRITE_FAIL",
            status="warning",
            error_code=exc.error_code,
        )
        return False
    return True
