"""UTC-focused helpers for deterministic run metadata."""

from __future__ import annotations

import time
from datetime import date, datetime, timezone

from roadrollup.common.errors import RefreshTimeoutError


def utc_today_iso() -> str:
    return datetime.now(tz=timezone.utc).date().isoformat()


def parse_run_date(value: str | None) -> str:
    if not value:
        return utc_today_iso()
    parsed = date.fromisoformat(value)
    return parsed.isoformat()


def utc_timestamp_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat(timespec="milliseconds")


class Deadline:
    """Cooperative deadline checked between refresh steps."""

    def __init__(self, seconds: float | None) -> None:
        self.seconds = seconds
        self.started_at = time.monotonic()

    def elapsed(self) -> float:
        return time.monotonic() - self.started_at

    def expired(self) -> bool:
        return self.seconds is not None and self.elapsed() > self.seconds

    def check(self, step: str) -> None:
        if self.expired():
            raise RefreshTimeoutError(f"Deadline of {self.seconds}s exceeded before step {step}")
