"""Ramp-up efficiency curves."""

from __future__ import annotations

from bisect import bisect_right
from typing import Optional

from .domain import RampUpPlan

FULL_EFFICIENCY = 100.0
WORKING_MINUTES_PER_DAY = 540


def efficiency_on_day(plan: Optional[RampUpPlan], day_offset: int) -> float:
    """Return the efficiency percentage for the given production day.

    ``day_offset`` is zero-based and counts the order's production days. A
    working day on which the efficiency floors capacity to zero still counts.
    The greatest point at or before the offset applies;
    past the last point the plan's final efficiency applies. Offsets before
    the first point use the first point's efficiency.
    """

    if day_offset < 0:
        raise ValueError("Day offset cannot be negative")
    if plan is None or not plan.points:
        return FULL_EFFICIENCY
    points = plan.points
    if day_offset > points[-1].day:
        return plan.final_efficiency
    index = bisect_right([point.day for point in points], day_offset) - 1
    if index < 0:
        return points[0].efficiency
    return points[index].efficiency


def effective_capacity(capacity: int, efficiency: float) -> int:
    """Nominal capacity scaled by efficiency, floored to whole pieces."""

    return int(capacity * efficiency // 100)


def standard_minute_capacity(
    mo_count: int, smv: float, minutes_per_day: int = WORKING_MINUTES_PER_DAY
) -> int:
    """Pieces a line of ``mo_count`` operators sews per day at 100 % efficiency."""

    if mo_count <= 0 or smv <= 0:
        raise ValueError("Standard-minute capacity needs a positive SMV and operator count")
    return int(minutes_per_day * mo_count // smv)


__all__ = [
    "FULL_EFFICIENCY",
    "WORKING_MINUTES_PER_DAY",
    "efficiency_on_day",
    "effective_capacity",
    "standard_minute_capacity",
]
