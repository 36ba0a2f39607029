"""Core data structures for the garment line planner."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet, Mapping, NamedTuple, Optional, Tuple


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderStatus(str, Enum):
    """Lifecycle stages for a purchase order on the planning board."""

    PENDING = "pending"
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class LineStatus(str, Enum):
    """Operating state of a production line."""

    ACTIVE = "active"
    MAINTENANCE = "maintenance"
    OFFLINE = "offline"


class PurchaseStatus(str, Enum):
    """State of an ERP purchase before and after it enters scheduling."""

    PENDING = "pending"
    PLANNED = "planned"
    COMPLETED = "completed"


class CapacityBasis(str, Enum):
    """What a placement's daily output is derived from."""

    LINE = "line"
    # 540 working minutes times machine operators, divided by the order's SMV.
    STANDARD_MINUTES = "standard_minutes"


ALLOWED_TRANSITIONS: Mapping[OrderStatus, FrozenSet[OrderStatus]] = {
    # Re-placing an order that already has recorded output lands it in progress.
    OrderStatus.PENDING: frozenset({OrderStatus.SCHEDULED, OrderStatus.IN_PROGRESS}),
    OrderStatus.SCHEDULED: frozenset(
        {OrderStatus.IN_PROGRESS, OrderStatus.COMPLETED, OrderStatus.PENDING}
    ),
    OrderStatus.IN_PROGRESS: frozenset({OrderStatus.COMPLETED, OrderStatus.PENDING}),
    OrderStatus.COMPLETED: frozenset(),
}


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return current == target or target in ALLOWED_TRANSITIONS[current]


@dataclass(slots=True)
class LineGroup:
    """Organisational container for production lines."""

    id: str
    name: str
    is_expanded: bool = True
    sort_order: int = 0


@dataclass(slots=True)
class ProductionLine:
    """A sewing line with a nominal daily output in pieces."""

    id: str
    name: str
    capacity: int
    group_id: Optional[str] = None
    status: LineStatus = LineStatus.ACTIVE
    sort_order: int = 0
    description: str = ""

    def __post_init__(self) -> None:
        if self.capacity <= 0:
            raise ValueError("Line capacity must be a positive number of pieces")

    @property
    def is_active(self) -> bool:
        return self.status == LineStatus.ACTIVE


@dataclass(slots=True)
class Holiday:
    """A non-production day, either for every line or for assigned lines."""

    id: str
    date: date
    name: str
    is_global: bool = True


@dataclass(slots=True)
class HolidayLineAssignment:
    """Links a non-global holiday to a single production line."""

    id: str
    holiday_id: str
    line_id: str


class RampUpPoint(NamedTuple):
    """Efficiency percentage reached on a given production day."""

    day: int
    efficiency: float


@dataclass(slots=True)
class RampUpPlan:
    """Efficiency curve applied during the first production days of an order."""

    id: str
    name: str
    points: Tuple[RampUpPoint, ...] = tuple()
    final_efficiency: float = 100.0

    def __post_init__(self) -> None:
        points = tuple(sorted(self.points, key=lambda point: point.day))
        days = [point.day for point in points]
        if len(set(days)) != len(days):
            raise ValueError("Ramp-up points must have distinct day offsets")
        for point in points:
            if point.day < 0:
                raise ValueError("Ramp-up day offsets start at 0")
            if not 0 < point.efficiency <= 100:
                raise ValueError("Ramp-up efficiencies must be in (0, 100]")
        if not 0 < self.final_efficiency <= 100:
            raise ValueError("Final efficiency must be in (0, 100]")
        self.points = points


@dataclass(slots=True)
class OrderPlacement:
    """Where and when a scheduled order runs."""

    line_id: str
    start_date: date
    end_date: date
    ramp_up_plan_id: Optional[str] = None
    capacity_basis: CapacityBasis = CapacityBasis.LINE

    def __post_init__(self) -> None:
        if self.end_date < self.start_date:
            raise ValueError("Plan end date lies before the plan start date")


@dataclass(slots=True)
class Order:
    """A purchase order (or a fragment of one) to be sewn on a line."""

    id: str
    po_number: str
    style_id: str
    order_quantity: int
    cut_quantity: int = 0
    issue_quantity: int = 0
    status: OrderStatus = OrderStatus.PENDING
    placement: Optional[OrderPlacement] = None
    actual_production: Dict[date, int] = field(default_factory=dict)
    base_po_number: Optional[str] = None
    split_number: Optional[int] = None
    purchase_id: Optional[str] = None
    smv: float = 0.0
    mo_count: int = 0
    created_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        if self.order_quantity <= 0:
            raise ValueError("Order quantity must be positive")
        self.check_state()

    def check_state(self) -> None:
        """Reject status/placement combinations that cannot occur."""

        if self.status == OrderStatus.PENDING and self.placement is not None:
            raise ValueError(f"Pending order {self.po_number} cannot carry a placement")
        if self.status != OrderStatus.PENDING and self.placement is None:
            raise ValueError(
                f"Order {self.po_number} is {self.status.value} but has no placement"
            )
        if (self.base_po_number is None) != (self.split_number is None):
            raise ValueError("Split fragments need both a base PO number and a split number")
        if self.produced_quantity > self.order_quantity:
            raise ValueError(
                f"Order {self.po_number} records more output than its quantity"
            )

    @property
    def produced_quantity(self) -> int:
        return sum(self.actual_production.values())

    @property
    def remaining_quantity(self) -> int:
        return self.order_quantity - self.produced_quantity

    @property
    def family_po_number(self) -> str:
        """PO number shared by the original order and all of its fragments."""

        return self.base_po_number or self.po_number

    @property
    def is_fragment(self) -> bool:
        return self.split_number is not None

    @property
    def assigned_line_id(self) -> Optional[str]:
        return self.placement.line_id if self.placement else None

    @property
    def plan_start_date(self) -> Optional[date]:
        return self.placement.start_date if self.placement else None

    @property
    def plan_end_date(self) -> Optional[date]:
        return self.placement.end_date if self.placement else None

    @property
    def standard_minutes(self) -> float:
        return self.order_quantity * self.smv


@dataclass(slots=True)
class PlannedProduction:
    """Quantity of one order planned for one line on one day."""

    id: str
    order_id: str
    line_id: str
    planned_date: date
    planned_quantity: int
    status: OrderStatus = OrderStatus.SCHEDULED
    order_index: int = 0
    ramp_day: int = 0
    actual_quantity: Optional[int] = None

    def __post_init__(self) -> None:
        if self.planned_quantity <= 0:
            raise ValueError("Planned quantity must be positive")


@dataclass(slots=True)
class Purchase:
    """Purchase order as delivered by the ERP synchronisation."""

    id: str
    po_number: str
    supplier: str
    total_quantity: int
    order_date: date
    delivery_date: Optional[date] = None
    status: PurchaseStatus = PurchaseStatus.PENDING
    created_at: datetime = field(default_factory=_utcnow)


@dataclass(slots=True)
class SplitFamily:
    """Quantity bookkeeping for an order that has been split."""

    base_po_number: str
    original_quantity: int

    @property
    def id(self) -> str:
        return self.base_po_number


__all__ = [
    "ALLOWED_TRANSITIONS",
    "can_transition",
    "OrderStatus",
    "LineStatus",
    "PurchaseStatus",
    "CapacityBasis",
    "LineGroup",
    "ProductionLine",
    "Holiday",
    "HolidayLineAssignment",
    "RampUpPoint",
    "RampUpPlan",
    "OrderPlacement",
    "Order",
    "PlannedProduction",
    "Purchase",
    "SplitFamily",
]
