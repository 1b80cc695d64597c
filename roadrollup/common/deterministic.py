"""Helpers for deterministic ordering and serialisation."""

from __future__ import annotations

from typing import Callable, Iterable, TypeVar

T = TypeVar("T")


def stable_sorted(items: Iterable[T], key: Callable[[T], object]) -> list[T]:
    return sorted(items, key=key)


def round_metric(value: float | None, digits: int = 6) -> float | None:
    # Summation order differs between runs only below this precision.
    if value is None:
        return None
    return round(value, digits)
