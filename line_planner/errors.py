"""Exceptions raised by the scheduling and capacity engine."""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, Optional

from .repository import RecordNotFoundError


class PlanningError(Exception):
    """Base class for recoverable planning failures.

    Every subclass carries the identifiers a caller needs to explain the
    failure to a planner; ``to_dict`` flattens them for JSON responses.
    """

    code = "planning_error"

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.code, "message": self.message}
        for key, value in self.context.items():
            payload[key] = value.isoformat() if isinstance(value, date) else value
        return payload


class CapacityExceeded(PlanningError):
    """The horizon ended before the whole quantity could be allocated."""

    code = "capacity_exceeded"

    def __init__(
        self, order_id: str, line_id: str, start_date: date, shortfall: int
    ) -> None:
        super().__init__(
            f"Line {line_id} cannot absorb order {order_id} from {start_date:%Y-%m-%d}; "
            f"{shortfall} pieces remain unallocated",
            order_id=order_id,
            line_id=line_id,
            start_date=start_date,
            shortfall=shortfall,
        )
        self.shortfall = shortfall


class HolidayOnly(PlanningError):
    """Every day in the horizon is a holiday for the target line."""

    code = "holiday_only"

    def __init__(
        self, order_id: str, line_id: str, start_date: date, horizon_days: int
    ) -> None:
        super().__init__(
            f"Line {line_id} has no working day within {horizon_days} days "
            f"of {start_date:%Y-%m-%d}",
            order_id=order_id,
            line_id=line_id,
            start_date=start_date,
            horizon_days=horizon_days,
        )


class InvalidSplitQuantity(PlanningError):
    code = "invalid_split_quantity"

    def __init__(self, order_id: str, requested: int, maximum: int) -> None:
        super().__init__(
            f"Cannot split {requested} pieces from order {order_id}; "
            f"choose between 1 and {maximum}",
            order_id=order_id,
            requested=requested,
            maximum=maximum,
        )


class InvariantViolation(PlanningError):
    """Split quantities no longer add up. Indicates a bug, not user error."""

    code = "invariant_violation"

    def __init__(self, base_po_number: str, expected: int, actual: int) -> None:
        super().__init__(
            f"Split family {base_po_number} sums to {actual}, expected {expected}",
            base_po_number=base_po_number,
            expected=expected,
            actual=actual,
        )


class NotFound(PlanningError, RecordNotFoundError):
    code = "not_found"

    def __init__(self, kind: str, item_id: str) -> None:
        super().__init__(f"{kind} {item_id!r} not found", kind=kind, id=item_id)


class InvalidTransition(PlanningError):
    code = "invalid_transition"

    def __init__(self, order_id: str, current: str, action: str) -> None:
        super().__init__(
            f"Order {order_id} is {current} and cannot be {action}",
            order_id=order_id,
            status=current,
            action=action,
        )


class LineUnavailable(PlanningError):
    code = "line_unavailable"

    def __init__(self, line_id: str, status: str) -> None:
        super().__init__(
            f"Line {line_id} is {status} and accepts no new orders",
            line_id=line_id,
            status=status,
        )


class ProductionExceedsOrder(PlanningError):
    code = "production_exceeds_order"

    def __init__(
        self, order_id: str, recorded: int, order_quantity: int, day: Optional[date] = None
    ) -> None:
        super().__init__(
            f"Order {order_id} would record {recorded} pieces against a quantity of "
            f"{order_quantity}",
            order_id=order_id,
            recorded=recorded,
            order_quantity=order_quantity,
            day=day,
        )


__all__ = [
    "PlanningError",
    "CapacityExceeded",
    "HolidayOnly",
    "InvalidSplitQuantity",
    "InvariantViolation",
    "NotFound",
    "InvalidTransition",
    "LineUnavailable",
    "ProductionExceedsOrder",
]
