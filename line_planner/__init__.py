"""Production planning for garment sewing lines.

This package provides data models, in-memory and SQLite persistence, and a
scheduling engine that spreads orders over line capacity while honouring
holidays, ramp-up curves and split orders.
"""

from .domain import (
    CapacityBasis,
    Holiday,
    LineGroup,
    LineStatus,
    Order,
    OrderStatus,
    PlannedProduction,
    ProductionLine,
    Purchase,
    PurchaseStatus,
    RampUpPlan,
    RampUpPoint,
    SplitFamily,
)
from .errors import (
    CapacityExceeded,
    HolidayOnly,
    InvalidSplitQuantity,
    InvalidTransition,
    InvariantViolation,
    LineUnavailable,
    NotFound,
    PlanningError,
    ProductionExceedsOrder,
)
from .scheduling import ChangeSet, OverlapPosition, SchedulingEngine
from .services import PlannerService, PlanningOptions

__all__ = [
    "CapacityBasis",
    "Holiday",
    "LineGroup",
    "LineStatus",
    "Order",
    "OrderStatus",
    "PlannedProduction",
    "ProductionLine",
    "Purchase",
    "PurchaseStatus",
    "RampUpPlan",
    "RampUpPoint",
    "SplitFamily",
    "CapacityExceeded",
    "HolidayOnly",
    "InvalidSplitQuantity",
    "InvalidTransition",
    "InvariantViolation",
    "LineUnavailable",
    "NotFound",
    "PlanningError",
    "ProductionExceedsOrder",
    "ChangeSet",
    "OverlapPosition",
    "SchedulingEngine",
    "PlannerService",
    "PlanningOptions",
]
