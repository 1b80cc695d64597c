"""Run and record identifier helpers."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone


def generate_run_id() -> str:
    now = datetime.now(tz=timezone.utc)
    return now.strftime("run-%Y%m%dT%H%M%S%fZ")


def generate_log_id() -> str:
    return uuid.uuid4().hex


def segment_record_id(district_id: str, segment_id: str) -> str:
    return f"{district_id}_{segment_id}"


def dedup_group_id(district_id: str, member_ids: list[str]) -> str:
    # Keyed by the smallest member so the id survives re-runs on unchanged input.
    return f"{district_id}_dedup_{min(member_ids)}"
