"""Length and area unit conversions.

All conversions use the fixed factors in ``constants`` so that every stored
record is converted identically.
"""

from __future__ import annotations

from roadrollup.common.constants import FEET_PER_METER, METERS_PER_MILE, SQ_METERS_PER_SQ_MILE


def meters_to_miles(meters: float) -> float:
    return meters / METERS_PER_MILE


def miles_to_meters(miles: float) -> float:
    return miles * METERS_PER_MILE


def meters_to_feet(meters: float) -> float:
    return meters * FEET_PER_METER


def feet_to_meters(feet: float) -> float:
    return feet / FEET_PER_METER


def sq_meters_to_sq_miles(sq_meters: float | None) -> float | None:
    if sq_meters is None:
        return None
    return sq_meters / SQ_METERS_PER_SQ_MILE


def per_area(value: float, area: float | None) -> float | None:
    """Density of ``value`` over ``area``; ``None`` when the area is zero or unknown."""
    if area is None or area <= 0:
        return None
    return value / area
