"""Scheduling engine: places orders on lines and keeps the plan consistent.

The engine is pure. It is built from a snapshot of lines, holidays, ramp-up
plans, plan entries, orders and split families, and every operation returns
a :class:`ChangeSet` describing the new state. Nothing in the snapshot is
mutated; records that change are deep copies. A failing operation raises a
:class:`~line_planner.errors.PlanningError` before any change set exists, so
callers never observe a half-applied mutation.
"""

from __future__ import annotations

import logging
from copy import deepcopy
from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import uuid4

from .capacity import CapacityAccountant, CellLoad
from .domain import (
    CapacityBasis,
    Order,
    OrderPlacement,
    OrderStatus,
    PlannedProduction,
    ProductionLine,
    RampUpPlan,
    SplitFamily,
    can_transition,
)
from .errors import (
    CapacityExceeded,
    HolidayOnly,
    InvalidSplitQuantity,
    InvalidTransition,
    LineUnavailable,
    NotFound,
    ProductionExceedsOrder,
)
from .holiday_calendar import HolidayCalendar
from .rampup import effective_capacity, efficiency_on_day, standard_minute_capacity
from .splits import SplitBookkeeper, fragment_po_number, replace_members

logger = logging.getLogger(__name__)

DEFAULT_HORIZON_DAYS = 365

PLACED_STATUSES = frozenset({OrderStatus.SCHEDULED, OrderStatus.IN_PROGRESS})


class OverlapPosition(str, Enum):
    """Where a placement goes relative to the orders it collides with."""

    BEFORE = "before"
    AFTER = "after"


@dataclass(slots=True)
class DayAllocation:
    """Quantity assigned to one working day while spreading an order."""

    day: date
    quantity: int
    efficiency: float
    ramp_day: int
    available: int


@dataclass(slots=True)
class ChangeSet:
    """Records to write and delete so the store reflects an operation."""

    orders: List[Order] = field(default_factory=list)
    entries: List[PlannedProduction] = field(default_factory=list)
    removed_entry_ids: List[str] = field(default_factory=list)
    removed_order_ids: List[str] = field(default_factory=list)
    families: List[SplitFamily] = field(default_factory=list)
    removed_family_ids: List[str] = field(default_factory=list)
    lines: List[ProductionLine] = field(default_factory=list)


@dataclass(slots=True)
class PlacementResult:
    order: Order
    entries: List[PlannedProduction]
    changes: ChangeSet

    @property
    def daily_plan(self) -> Dict[date, int]:
        return {entry.planned_date: entry.planned_quantity for entry in self.entries}


@dataclass(slots=True)
class OverlapReport:
    """Outcome of checking a drop target against existing commitments."""

    order_id: str
    line_id: str
    start_date: date
    overlaps: bool
    naive_plan: List[DayAllocation] = field(default_factory=list)
    shortfalls: Dict[date, int] = field(default_factory=dict)
    conflicting_order_ids: List[str] = field(default_factory=list)


@dataclass(slots=True)
class SplitResult:
    original: Order
    fragment: Order
    family: SplitFamily
    changes: ChangeSet


class SchedulingEngine:
    """Computes placements, moves, splits and merges over a plan snapshot."""

    def __init__(
        self,
        lines: Iterable[ProductionLine],
        calendar: HolidayCalendar,
        entries: Iterable[PlannedProduction] = (),
        orders: Iterable[Order] = (),
        ramp_up_plans: Iterable[RampUpPlan] = (),
        families: Iterable[SplitFamily] = (),
        *,
        horizon_days: int = DEFAULT_HORIZON_DAYS,
    ) -> None:
        if horizon_days <= 0:
            raise ValueError("The scheduling horizon must span at least one day")
        self.lines: Dict[str, ProductionLine] = {line.id: line for line in lines}
        self.orders: Dict[str, Order] = {order.id: order for order in orders}
        self.ramp_up_plans: Dict[str, RampUpPlan] = {plan.id: plan for plan in ramp_up_plans}
        self.families: Dict[str, SplitFamily] = {
            family.base_po_number: family for family in families
        }
        self.horizon_days = horizon_days
        self.accountant = CapacityAccountant(self.lines, calendar, entries)
        self.bookkeeper = SplitBookkeeper(self.orders.values(), self.families)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    def _order(self, order_id: str) -> Order:
        try:
            return self.orders[order_id]
        except KeyError:
            raise NotFound("Order", order_id) from None

    def _line(self, line_id: str) -> ProductionLine:
        try:
            return self.lines[line_id]
        except KeyError:
            raise NotFound("Production line", line_id) from None

    def _ramp_up_plan(self, plan_id: Optional[str]) -> Optional[RampUpPlan]:
        if plan_id is None:
            return None
        try:
            return self.ramp_up_plans[plan_id]
        except KeyError:
            raise NotFound("Ramp-up plan", plan_id) from None

    def _horizon(self, horizon_days: Optional[int]) -> int:
        horizon = self.horizon_days if horizon_days is None else horizon_days
        if horizon <= 0:
            raise ValueError("The scheduling horizon must span at least one day")
        return horizon

    def entries_for(self, order_id: str) -> List[PlannedProduction]:
        entries = [entry for entry in self.accountant.entries() if entry.order_id == order_id]
        entries.sort(key=lambda entry: (entry.planned_date, entry.order_index))
        return entries

    def is_holiday(self, line_id: str, day: date) -> bool:
        self._line(line_id)
        return self.accountant.is_holiday(line_id, day)

    def available_capacity(self, line_id: str, day: date) -> int:
        self._line(line_id)
        return self.accountant.available_capacity(line_id, day)

    def utilization(self, line_id: str, day: date) -> float:
        self._line(line_id)
        return self.accountant.utilization(line_id, day)

    def cell_loads(self, line_id: str, start: date, end: date) -> List[CellLoad]:
        self._line(line_id)
        days = (end - start).days + 1
        return [
            self.accountant.cell_load(line_id, start + timedelta(days=offset))
            for offset in range(max(days, 0))
        ]

    def holiday_conflicts(self) -> List[PlannedProduction]:
        """Plan entries that sit on a day which is now a holiday for their line."""

        conflicts = [
            entry
            for entry in self.accountant.entries()
            if self.accountant.is_holiday(entry.line_id, entry.planned_date)
        ]
        conflicts.sort(key=lambda entry: (entry.line_id, entry.planned_date, entry.order_index))
        return conflicts

    # ------------------------------------------------------------------
    # Allocation
    # ------------------------------------------------------------------
    def _allocate(
        self,
        order: Order,
        line: ProductionLine,
        start_date: date,
        accountant: CapacityAccountant,
        ramp_up_plan: Optional[RampUpPlan],
        horizon_days: int,
        allow_overbooking: bool,
        capacity_basis: CapacityBasis = CapacityBasis.LINE,
    ) -> List[DayAllocation]:
        remaining = order.remaining_quantity
        allocations: List[DayAllocation] = []
        ramp_day = 0
        working_days = 0
        order_rate = None
        if capacity_basis == CapacityBasis.STANDARD_MINUTES:
            order_rate = standard_minute_capacity(order.mo_count, order.smv)
        for offset in range(horizon_days):
            day = start_date + timedelta(days=offset)
            if accountant.is_holiday(line.id, day):
                continue
            working_days += 1
            efficiency = efficiency_on_day(ramp_up_plan, ramp_day)
            if order_rate is None:
                ceiling = accountant.effective_capacity(line.id, efficiency)
            else:
                ceiling = effective_capacity(order_rate, efficiency)
            if ceiling <= 0:
                # Nothing can be sewn at this efficiency; the curve still moves on.
                ramp_day += 1
                continue
            if allow_overbooking:
                available = ceiling
            elif order_rate is None:
                available = accountant.available_capacity(line.id, day, efficiency)
            else:
                available = min(ceiling, accountant.available_capacity(line.id, day))
            quantity = min(remaining, available)
            if quantity <= 0:
                continue
            allocations.append(DayAllocation(day, quantity, efficiency, ramp_day, available))
            logger.debug(
                "Allocated %s of %s to line %s on %s (efficiency %.1f%%)",
                quantity,
                order.po_number,
                line.id,
                day,
                efficiency,
            )
            remaining -= quantity
            ramp_day += 1
            if remaining == 0:
                return allocations
        if working_days == 0:
            raise HolidayOnly(order.id, line.id, start_date, horizon_days)
        raise CapacityExceeded(order.id, line.id, start_date, remaining)

    def _place_pending(
        self,
        order: Order,
        line_id: str,
        start_date: date,
        accountant: CapacityAccountant,
        *,
        ramp_up_plan_id: Optional[str],
        horizon_days: Optional[int],
        allow_overbooking: bool,
        capacity_basis: CapacityBasis = CapacityBasis.LINE,
        require_active: bool = True,
    ) -> PlacementResult:
        """Place ``order`` (a pending copy) and return the placed copy."""

        horizon = self._horizon(horizon_days)
        line = self._line(line_id)
        if require_active and not line.is_active:
            raise LineUnavailable(line.id, line.status.value)
        if order.remaining_quantity <= 0:
            raise InvalidTransition(order.id, order.status.value, "placed without open quantity")
        ramp_up_plan = self._ramp_up_plan(ramp_up_plan_id)
        allocations = self._allocate(
            order,
            line,
            start_date,
            accountant,
            ramp_up_plan,
            horizon,
            allow_overbooking,
            capacity_basis,
        )
        target = OrderStatus.IN_PROGRESS if order.produced_quantity else OrderStatus.SCHEDULED
        if not can_transition(order.status, target):
            raise InvalidTransition(order.id, order.status.value, "placed")
        entries = [
            PlannedProduction(
                id=str(uuid4()),
                order_id=order.id,
                line_id=line.id,
                planned_date=allocation.day,
                planned_quantity=allocation.quantity,
                status=target,
                order_index=accountant.next_order_index(line.id, allocation.day),
                ramp_day=allocation.ramp_day,
            )
            for allocation in allocations
        ]
        placed = deepcopy(order)
        placed.status = target
        placed.placement = OrderPlacement(
            line_id=line.id,
            start_date=allocations[0].day,
            end_date=allocations[-1].day,
            ramp_up_plan_id=ramp_up_plan_id,
            capacity_basis=capacity_basis,
        )
        placed.check_state()
        return PlacementResult(placed, entries, ChangeSet(orders=[placed], entries=list(entries)))

    @staticmethod
    def _unplaced(order: Order) -> Order:
        pending = deepcopy(order)
        pending.placement = None
        pending.status = OrderStatus.PENDING
        return pending

    def _drop_changes(self, order: Order) -> Tuple[Order, ChangeSet]:
        pending = self._unplaced(order)
        changes = ChangeSet(
            orders=[pending],
            removed_entry_ids=[entry.id for entry in self.entries_for(order.id)],
        )
        return pending, changes

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------
    def place(
        self,
        order_id: str,
        line_id: str,
        start_date: date,
        *,
        ramp_up_plan_id: Optional[str] = None,
        horizon_days: Optional[int] = None,
        allow_overbooking: bool = False,
        capacity_basis: Optional[CapacityBasis] = None,
    ) -> PlacementResult:
        """Spread a pending order over successive working days of a line."""

        order = self._order(order_id)
        if order.status != OrderStatus.PENDING:
            raise InvalidTransition(order.id, order.status.value, "placed")
        accountant = self.accountant.copy(exclude_order_ids=[order.id])
        return self._place_pending(
            order,
            line_id,
            start_date,
            accountant,
            ramp_up_plan_id=ramp_up_plan_id,
            horizon_days=horizon_days,
            allow_overbooking=allow_overbooking,
            capacity_basis=capacity_basis or CapacityBasis.LINE,
        )

    def drop(self, order_id: str) -> ChangeSet:
        """Send a placed order back to the pending pool, keeping recorded output."""

        order = self._order(order_id)
        if order.status not in PLACED_STATUSES:
            raise InvalidTransition(order.id, order.status.value, "moved back to pending")
        _, changes = self._drop_changes(order)
        return changes

    def move(
        self,
        order_id: str,
        line_id: str,
        start_date: date,
        *,
        ramp_up_plan_id: Optional[str] = None,
        horizon_days: Optional[int] = None,
        allow_overbooking: bool = False,
        capacity_basis: Optional[CapacityBasis] = None,
    ) -> PlacementResult:
        """Drop and re-place as one step; a failed placement leaves the old plan."""

        order = self._order(order_id)
        if order.status == OrderStatus.PENDING:
            return self.place(
                order_id,
                line_id,
                start_date,
                ramp_up_plan_id=ramp_up_plan_id,
                horizon_days=horizon_days,
                allow_overbooking=allow_overbooking,
                capacity_basis=capacity_basis,
            )
        if order.status not in PLACED_STATUSES:
            raise InvalidTransition(order.id, order.status.value, "moved")
        if order.placement is not None:
            ramp_up_plan_id = ramp_up_plan_id or order.placement.ramp_up_plan_id
            capacity_basis = capacity_basis or order.placement.capacity_basis
        pending, drop_changes = self._drop_changes(order)
        accountant = self.accountant.copy(exclude_order_ids=[order.id])
        result = self._place_pending(
            pending,
            line_id,
            start_date,
            accountant,
            ramp_up_plan_id=ramp_up_plan_id,
            horizon_days=horizon_days,
            allow_overbooking=allow_overbooking,
            capacity_basis=capacity_basis or CapacityBasis.LINE,
        )
        changes = ChangeSet(
            orders=[result.order],
            entries=list(result.entries),
            removed_entry_ids=drop_changes.removed_entry_ids,
        )
        return PlacementResult(result.order, result.entries, changes)

    def place_around_overlap(
        self,
        order_id: str,
        line_id: str,
        target_date: date,
        position: OverlapPosition,
        *,
        ramp_up_plan_id: Optional[str] = None,
        horizon_days: Optional[int] = None,
        allow_overbooking: bool = False,
        capacity_basis: Optional[CapacityBasis] = None,
    ) -> PlacementResult:
        """Place an order on a date already taken by other orders of the line.

        ``before`` puts the order at ``target_date`` and re-places the
        colliding orders back to back behind it, each starting the day after
        the previous one ends. ``after`` starts the order on the latest end
        date of the colliding orders if that day still has capacity left,
        otherwise on the following day. Without a collision this is a plain
        placement at ``target_date``.
        """

        position = OverlapPosition(position)
        order = self._order(order_id)
        if order.status != OrderStatus.PENDING and order.status not in PLACED_STATUSES:
            raise InvalidTransition(order.id, order.status.value, "placed")
        if order.placement is not None:
            ramp_up_plan_id = ramp_up_plan_id or order.placement.ramp_up_plan_id
            capacity_basis = capacity_basis or order.placement.capacity_basis
        capacity_basis = capacity_basis or CapacityBasis.LINE
        options = dict(
            ramp_up_plan_id=ramp_up_plan_id,
            horizon_days=horizon_days,
            allow_overbooking=allow_overbooking,
            capacity_basis=capacity_basis,
        )

        report = self.detect_overlap(
            order_id,
            line_id,
            target_date,
            ramp_up_plan_id=ramp_up_plan_id,
            horizon_days=horizon_days,
            capacity_basis=capacity_basis,
        )
        blocking = [
            other
            for other in (self._order(other_id) for other_id in report.conflicting_order_ids)
            if other.status in PLACED_STATUSES and other.placement is not None
        ]
        if not blocking:
            return self.move(order_id, line_id, target_date, **options)

        if position == OverlapPosition.AFTER:
            start_date = max([other.placement.end_date for other in blocking] + [target_date])
            accountant = self.accountant.copy(exclude_order_ids=[order.id])
            if accountant.available_capacity(line_id, start_date) <= 0:
                start_date += timedelta(days=1)
            return self.move(order_id, line_id, start_date, **options)

        blocking.sort(key=lambda other: (other.plan_start_date, other.created_at, other.po_number))
        scratch = self.accountant.copy(
            exclude_order_ids=[order.id] + [other.id for other in blocking]
        )
        changes = ChangeSet()
        pending = order
        if order.status in PLACED_STATUSES:
            pending, dropped = self._drop_changes(order)
            changes.removed_entry_ids.extend(dropped.removed_entry_ids)
        result = self._place_pending(pending, line_id, target_date, scratch, **options)
        scratch.commit(result.entries)
        changes.orders.append(result.order)
        changes.entries.extend(result.entries)

        next_start = result.entries[-1].planned_date + timedelta(days=1)
        for other in blocking:
            other_pending, dropped = self._drop_changes(other)
            moved = self._place_pending(
                other_pending,
                line_id,
                next_start,
                scratch,
                ramp_up_plan_id=other.placement.ramp_up_plan_id,
                horizon_days=horizon_days,
                allow_overbooking=allow_overbooking,
                capacity_basis=other.placement.capacity_basis,
                require_active=False,
            )
            scratch.commit(moved.entries)
            changes.orders.append(moved.order)
            changes.entries.extend(moved.entries)
            changes.removed_entry_ids.extend(dropped.removed_entry_ids)
            next_start = moved.entries[-1].planned_date + timedelta(days=1)
        logger.debug(
            "Placed %s before %s orders on line %s", order.po_number, len(blocking), line_id
        )
        return PlacementResult(result.order, result.entries, changes)

    def detect_overlap(
        self,
        order_id: str,
        line_id: str,
        start_date: date,
        *,
        ramp_up_plan_id: Optional[str] = None,
        horizon_days: Optional[int] = None,
        capacity_basis: Optional[CapacityBasis] = None,
    ) -> OverlapReport:
        """Check whether the naive plan from ``start_date`` collides with other orders."""

        horizon = self._horizon(horizon_days)
        capacity_basis = capacity_basis or CapacityBasis.LINE
        order = self._order(order_id)
        line = self._line(line_id)
        ramp_up_plan = self._ramp_up_plan(ramp_up_plan_id)
        accountant = self.accountant.copy(exclude_order_ids=[order.id])
        naive = self._allocate(
            order,
            line,
            start_date,
            accountant,
            ramp_up_plan,
            horizon,
            allow_overbooking=True,
            capacity_basis=capacity_basis,
        )
        shortfalls: Dict[date, int] = {}
        conflicting: List[str] = []
        for allocation in naive:
            if capacity_basis == CapacityBasis.LINE:
                available = accountant.available_capacity(
                    line.id, allocation.day, allocation.efficiency
                )
            else:
                available = min(
                    allocation.available, accountant.available_capacity(line.id, allocation.day)
                )
            if allocation.quantity > available:
                shortfalls[allocation.day] = allocation.quantity - available
                for other_id in accountant.conflicting_order_ids(line.id, allocation.day):
                    if other_id not in conflicting:
                        conflicting.append(other_id)
        return OverlapReport(
            order_id=order.id,
            line_id=line.id,
            start_date=start_date,
            overlaps=bool(shortfalls),
            naive_plan=naive,
            shortfalls=shortfalls,
            conflicting_order_ids=conflicting,
        )

    def split(self, order_id: str, split_quantity: int) -> SplitResult:
        """Carve ``split_quantity`` pieces off an order into a new fragment.

        Only the unproduced remainder can be split off; recorded output stays
        with the original. A placed original loses its plan and has to be
        placed again with its reduced quantity.
        """

        order = self._order(order_id)
        if order.status == OrderStatus.COMPLETED:
            raise InvalidTransition(order.id, order.status.value, "split")
        maximum = order.remaining_quantity - 1
        if split_quantity <= 0 or split_quantity > maximum:
            raise InvalidSplitQuantity(order.id, split_quantity, max(maximum, 0))

        base = order.family_po_number
        members = self.bookkeeper.members(base)
        family = self.bookkeeper.family(base) or SplitFamily(
            base_po_number=base,
            original_quantity=sum(member.order_quantity for member in members),
        )
        split_number = self.bookkeeper.next_split_number(base)

        changes = ChangeSet(families=[family])
        if order.status in PLACED_STATUSES:
            original, changes = self._drop_changes(order)
            changes.families.append(family)
        else:
            original = deepcopy(order)
            changes.orders.append(original)
        original.order_quantity -= split_quantity
        original.check_state()

        fragment = Order(
            id=str(uuid4()),
            po_number=fragment_po_number(base, split_number),
            style_id=order.style_id,
            order_quantity=split_quantity,
            base_po_number=base,
            split_number=split_number,
            purchase_id=order.purchase_id,
            smv=order.smv,
            mo_count=order.mo_count,
        )
        changes.orders.append(fragment)
        self.bookkeeper.verify(family, replace_members(members, [original, fragment]))
        return SplitResult(original, fragment, family, changes)

    def merge(self, fragment_id: str, into_order_id: Optional[str] = None) -> ChangeSet:
        """Fold a pending, unproduced fragment back into another family member."""

        fragment = self._order(fragment_id)
        if not fragment.is_fragment:
            raise InvalidTransition(fragment.id, fragment.status.value, "merged (not a fragment)")
        if fragment.status != OrderStatus.PENDING or fragment.produced_quantity:
            raise InvalidTransition(fragment.id, fragment.status.value, "merged")
        base = fragment.family_po_number
        if into_order_id is None:
            target = self.bookkeeper.root(base)
        else:
            target = self._order(into_order_id)
            if target.family_po_number != base or target.id == fragment.id:
                raise InvalidTransition(target.id, target.status.value, f"merged with {base}")
        if target.status == OrderStatus.COMPLETED:
            raise InvalidTransition(target.id, target.status.value, "merged into")

        if target.status in PLACED_STATUSES:
            merged, changes = self._drop_changes(target)
        else:
            merged = deepcopy(target)
            changes = ChangeSet(orders=[merged])
        merged.order_quantity += fragment.order_quantity
        changes.removed_order_ids.append(fragment.id)

        members = replace_members(self.bookkeeper.members(base), [merged], [fragment.id])
        family = self.bookkeeper.family(base)
        if family is not None:
            self.bookkeeper.verify(family, members)
            if not any(member.is_fragment for member in members):
                changes.removed_family_ids.append(base)
        return changes

    def change_quantity(self, order_id: str, quantity: int) -> ChangeSet:
        """Edit an order's quantity, carrying the family total and the plan along."""

        order = self._order(order_id)
        if quantity <= 0:
            raise ValueError("Order quantity must be positive")
        if quantity < order.produced_quantity:
            raise ProductionExceedsOrder(order.id, order.produced_quantity, quantity)
        if order.status == OrderStatus.COMPLETED:
            raise InvalidTransition(order.id, order.status.value, "resized")
        delta = quantity - order.order_quantity
        base = order.family_po_number
        family = self.bookkeeper.family(base)

        if order.status in PLACED_STATUSES and order.placement is not None:
            pending, drop_changes = self._drop_changes(order)
            pending.order_quantity = quantity
            result = self._place_pending(
                pending,
                order.placement.line_id,
                order.placement.start_date,
                self.accountant.copy(exclude_order_ids=[order.id]),
                ramp_up_plan_id=order.placement.ramp_up_plan_id,
                horizon_days=None,
                allow_overbooking=False,
                capacity_basis=order.placement.capacity_basis,
            )
            updated = result.order
            changes = ChangeSet(
                orders=[updated],
                entries=list(result.entries),
                removed_entry_ids=drop_changes.removed_entry_ids,
            )
        else:
            updated = deepcopy(order)
            updated.order_quantity = quantity
            updated.check_state()
            changes = ChangeSet(orders=[updated])

        if family is not None:
            family = replace(family, original_quantity=family.original_quantity + delta)
            members = replace_members(self.bookkeeper.members(base), [updated])
            self.bookkeeper.verify(family, members)
            changes.families.append(family)
        return changes

    def record_output(self, order_id: str, day: date, quantity: int) -> ChangeSet:
        """Book sewn pieces against an order and advance its status."""

        order = self._order(order_id)
        if quantity <= 0:
            raise ValueError("Recorded output must be positive")
        if order.status not in PLACED_STATUSES:
            raise InvalidTransition(order.id, order.status.value, "given output")
        total = order.produced_quantity + quantity
        if total > order.order_quantity:
            raise ProductionExceedsOrder(order.id, total, order.order_quantity, day)

        updated = deepcopy(order)
        updated.actual_production[day] = updated.actual_production.get(day, 0) + quantity
        updated.status = (
            OrderStatus.COMPLETED if total == order.order_quantity else OrderStatus.IN_PROGRESS
        )
        updated.check_state()

        entries: List[PlannedProduction] = []
        recorded_today = False
        for entry in self.entries_for(order.id):
            changed = replace(entry, status=updated.status)
            if entry.planned_date == day and not recorded_today:
                changed.actual_quantity = updated.actual_production[day]
                recorded_today = True
            entries.append(changed)
        return ChangeSet(orders=[updated], entries=entries)

    def replan_line(
        self,
        line_id: str,
        *,
        capacity: Optional[int] = None,
        allow_overbooking: bool = False,
    ) -> ChangeSet:
        """Re-place every order on a line from its current start date.

        Used after the line's capacity or holidays change. Orders are
        re-placed in start-date order; if any of them no longer fits, the
        whole replan fails.
        """

        line = self._line(line_id)
        changes = ChangeSet()
        if capacity is not None and capacity != line.capacity:
            line = replace(line, capacity=capacity)
            changes.lines.append(line)
        lines = dict(self.lines)
        lines[line.id] = line

        placed = [
            (order, order.placement)
            for order in self.orders.values()
            if order.status in PLACED_STATUSES
            and order.placement is not None
            and order.placement.line_id == line.id
        ]
        placed.sort(
            key=lambda item: (item[1].start_date, item[0].created_at, item[0].po_number)
        )
        placed_ids = [order.id for order, _ in placed]
        scratch = CapacityAccountant(
            lines,
            self.accountant.calendar,
            (entry for entry in self.accountant.entries() if entry.order_id not in placed_ids),
        )
        for order, placement in placed:
            pending, drop_changes = self._drop_changes(order)
            result = self._place_pending(
                pending,
                line.id,
                placement.start_date,
                scratch,
                ramp_up_plan_id=placement.ramp_up_plan_id,
                horizon_days=None,
                allow_overbooking=allow_overbooking,
                capacity_basis=placement.capacity_basis,
                require_active=False,
            )
            scratch.commit(result.entries)
            changes.orders.append(result.order)
            changes.entries.extend(result.entries)
            changes.removed_entry_ids.extend(drop_changes.removed_entry_ids)
        logger.debug("Replanned %s orders on line %s", len(placed), line.id)
        return changes


__all__ = [
    "DEFAULT_HORIZON_DAYS",
    "ChangeSet",
    "DayAllocation",
    "OverlapPosition",
    "OverlapReport",
    "PlacementResult",
    "SchedulingEngine",
    "SplitResult",
]
