"""File-backed generation store for per-district segment tables.

Each district directory holds immutable generation directories and a
``CURRENT`` pointer file naming the live one. A refresh writes a complete
staging directory, then commit renames it into place and replaces the pointer
with ``os.replace``. Readers resolve the pointer once and read a single
generation, so they never observe a half-written table set.
"""

from __future__ import annotations

import logging
import os
import shutil
import threading
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator

from roadrollup.common.errors import ConcurrentRefreshError, StoreError
from roadrollup.common.fs import append_jsonl, ensure_dir, read_json, read_jsonl, write_json, write_text_atomic
from roadrollup.common.logging import log_event
from roadrollup.common.models import DedupGroup, RawSegment, RollupRecord

RAW_TABLE = "raw_segments.json"
DEDUP_TABLE = "dedup_groups.json"
ROLLUP_TABLE = "rollups.json"
MANIFEST = "manifest.json"
POINTER = "CURRENT"
HISTORY = "rollup_history.jsonl"
STALE_STAGING_SECONDS = 3600


def _generation_name(number: int) -> str:
    return f"g{number:06d}"


def _generation_number(name: str | None) -> int:
    if not name:
        return 0
    return int(name.lstrip("g"))


@dataclass
class StagedGeneration:
    district_id: str
    base_generation: str | None
    path: Path

    def _write(self, filename: str, rows: list[dict[str, Any]]) -> None:
        try:
            write_json(self.path / filename, rows)
        except OSError as exc:
            raise StoreError(f"Failed to stage {filename} for {self.district_id}: {exc}") from exc

    def write_raw_segments(self, segments: list[RawSegment]) -> None:
        self._write(RAW_TABLE, [s.to_dict() for s in segments])

    def write_dedup_groups(self, groups: list[DedupGroup]) -> None:
        self._write(DEDUP_TABLE, [g.to_dict() for g in groups])

    def write_rollups(self, rollups: list[RollupRecord]) -> None:
        self._write(ROLLUP_TABLE, [r.to_dict() for r in rollups])


class SegmentStore:
    def __init__(self, root: Path, keep_generations: int = 3, logger: logging.Logger | None = None) -> None:
        self.root = root
        self.logger = logger or logging.getLogger("roadrollup.store")
        self.keep_generations = max(1, keep_generations)
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    # -- layout ---------------------------------------------------------

    def district_dir(self, district_id: str) -> Path:
        return self.root / "districts" / district_id

    def _generations_dir(self, district_id: str) -> Path:
        return self.district_dir(district_id) / "generations"

    def _staging_dir(self, district_id: str) -> Path:
        return self.district_dir(district_id) / "staging"

    def check_available(self) -> None:
        try:
            ensure_dir(self.root / "districts")
            probe = self.root / f".probe-{uuid.uuid4().hex}"
            probe.write_text("ok", encoding="utf-8")
            probe.unlink()
        except OSError as exc:
            raise StoreError(f"Store at {self.root} is unreachable: {exc}") from exc

    # -- locking --------------------------------------------------------

    def district_lock(self, district_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(district_id, threading.Lock())

    @contextmanager
    def exclusive(self, district_id: str) -> Iterator[None]:
        lock = self.district_lock(district_id)
        if not lock.acquire(blocking=False):
            raise ConcurrentRefreshError(f"Refresh already running for district {district_id}")
        try:
            yield
        finally:
            lock.release()

    # -- write path -----------------------------------------------------

    def current_generation(self, district_id: str) -> str | None:
        pointer = self.district_dir(district_id) / POINTER
        try:
            if not pointer.exists():
                return None
            return pointer.read_text(encoding="utf-8").strip() or None
        except OSError as exc:
            raise StoreError(f"Unable to read pointer for {district_id}: {exc}") from exc

    def purge_stale_staging(self, district_id: str) -> int:
        staging = self._staging_dir(district_id)
        if not staging.exists():
            return 0
        cutoff = time.time() - STALE_STAGING_SECONDS
        removed = 0
        for path in staging.iterdir():
            if path.is_dir() and path.stat().st_mtime < cutoff:
                shutil.rmtree(path, ignore_errors=True)
                removed += 1
        return removed

    def begin(self, district_id: str) -> StagedGeneration:
        base = self.current_generation(district_id)
        path = self._staging_dir(district_id) / uuid.uuid4().hex
        try:
            ensure_dir(path)
        except OSError as exc:
            raise StoreError(f"Unable to create staging area for {district_id}: {exc}") from exc
        return StagedGeneration(district_id=district_id, base_generation=base, path=path)

    def discard(self, staged: StagedGeneration) -> None:
        shutil.rmtree(staged.path, ignore_errors=True)

    def commit(self, staged: StagedGeneration, manifest: dict[str, Any]) -> str:
        district_id = staged.district_id
        current = self.current_generation(district_id)
        if current != staged.base_generation:
            raise ConcurrentRefreshError(
                f"District {district_id} moved from {staged.base_generation} to {current} during refresh"
            )
        target: Path | None = None
        moved = False
        try:
            generation = _generation_name(self._next_generation_number(district_id, current))
            target = self._generations_dir(district_id) / generation
            write_json(staged.path / MANIFEST, {**manifest, "generation": generation})
            ensure_dir(target.parent)
            os.replace(staged.path, target)
            moved = True
            write_text_atomic(self.district_dir(district_id) / POINTER, generation + "\n")
        except OSError as exc:
            # The pointer still names the previous generation; drop the orphan so a retry can reuse the slot.
            if moved and target is not None:
                shutil.rmtree(target, ignore_errors=True)
            raise StoreError(f"Commit failed for district {district_id}: {exc}") from exc

        self._append_history(district_id, generation, target)
        self._prune(district_id, keep=generation)
        return generation

    def _next_generation_number(self, district_id: str, current: str | None) -> int:
        highest = _generation_number(current)
        generations_dir = self._generations_dir(district_id)
        if generations_dir.exists():
            for path in generations_dir.iterdir():
                if path.is_dir() and path.name.startswith("g") and path.name[1:].isdigit():
                    highest = max(highest, _generation_number(path.name))
        return highest + 1

    def _append_history(self, district_id: str, generation: str, target: Path) -> None:
        """Record committed rollups; the generation is already live, so failures only warn."""
        try:
            rollups = read_json(target / ROLLUP_TABLE) if (target / ROLLUP_TABLE).exists() else []
            append_jsonl(
                self.district_dir(district_id) / HISTORY,
                [{**row, "generation": generation} for row in rollups],
            )
        except (OSError, ValueError) as exc:
            log_event(
                self.logger,
                f"rollup history append failed: {exc}",
                stage="store",
                district=district_id,
                event="HISTORY_WRITE_FAIL",
                status="warning",
                error_code=StoreError.error_code,
            )

    def _prune(self, district_id: str, keep: str) -> None:
        generations = sorted(p.name for p in self._generations_dir(district_id).iterdir() if p.is_dir())
        stale = [g for g in generations[: -self.keep_generations] if g != keep]
        for name in stale:
            shutil.rmtree(self._generations_dir(district_id) / name, ignore_errors=True)

    # -- read path ------------------------------------------------------

    def _read_table(self, district_id: str, filename: str) -> list[dict[str, Any]]:
        generation = self.current_generation(district_id)
        if generation is None:
            return []
        path = self._generations_dir(district_id) / generation / filename
        try:
            return read_json(path)
        except FileNotFoundError:
            return []
        except (OSError, ValueError) as exc:
            raise StoreError(f"Unable to read {filename} for {district_id}: {exc}") from exc

    def read_raw_segments(self, district_id: str) -> list[RawSegment]:
        return [RawSegment.from_dict(row) for row in self._read_table(district_id, RAW_TABLE)]

    def read_dedup_groups(self, district_id: str) -> list[DedupGroup]:
        return [DedupGroup.from_dict(row) for row in self._read_table(district_id, DEDUP_TABLE)]

    def read_rollups(self, district_id: str) -> list[RollupRecord]:
        return [RollupRecord.from_dict(row) for row in self._read_table(district_id, ROLLUP_TABLE)]

    def read_manifest(self, district_id: str) -> dict[str, Any] | None:
        generation = self.current_generation(district_id)
        if generation is None:
            return None
        path = self._generations_dir(district_id) / generation / MANIFEST
        return read_json(path) if path.exists() else None

    def rollup_history(self, district_id: str) -> list[dict[str, Any]]:
        return read_jsonl(self.district_dir(district_id) / HISTORY)

    def list_district_ids(self) -> list[str]:
        districts_dir = self.root / "districts"
        if not districts_dir.exists():
            return []
        return sorted(p.name for p in districts_dir.iterdir() if (p / POINTER).exists())
