"""Service layer that exposes the planning use-cases to clients."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import uuid4

from .capacity import CellLoad
from .domain import (
    CapacityBasis,
    Holiday,
    HolidayLineAssignment,
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
from .errors import NotFound
from .holiday_calendar import HolidayCalendar
from .repository import DuplicateRecordError, InMemoryRepository
from .scheduling import (
    DEFAULT_HORIZON_DAYS,
    PLACED_STATUSES,
    ChangeSet,
    OverlapPosition,
    OverlapReport,
    PlacementResult,
    SchedulingEngine,
    SplitResult,
)

logger = logging.getLogger(__name__)


def _repository(repo):
    return repo if repo is not None else InMemoryRepository()


@dataclass(slots=True)
class PlanningOptions:
    """Fine-tuning parameters used by the scheduling engine."""

    horizon_days: int = DEFAULT_HORIZON_DAYS
    allow_overbooking: bool = False
    default_ramp_up_plan_id: Optional[str] = None
    capacity_basis: CapacityBasis = CapacityBasis.LINE


@dataclass(slots=True)
class LineUtilization:
    """Per-day load of one line over a reporting window."""

    line_id: str
    line_name: str
    capacity: int
    cells: List[CellLoad] = field(default_factory=list)

    @property
    def peak_utilization(self) -> float:
        return max((cell.utilization for cell in self.cells), default=0.0)

    @property
    def average_utilization(self) -> float:
        working = [cell for cell in self.cells if not cell.is_holiday]
        if not working:
            return 0.0
        return sum(cell.utilization for cell in working) / len(working)

    @property
    def overbooked_days(self) -> List[date]:
        return [cell.day for cell in self.cells if cell.utilization > 100]


@dataclass(slots=True)
class SplitFamilyView:
    """An original order together with the fragments split from it."""

    base_po_number: str
    original_quantity: int
    root: Optional[Order]
    fragments: List[Order]

    @property
    def members(self) -> List[Order]:
        return ([self.root] if self.root else []) + list(self.fragments)

    @property
    def total_quantity(self) -> int:
        return sum(order.order_quantity for order in self.members)


class PlannerService:
    """Facade that exposes planning use-cases to clients.

    Each mutating call loads a snapshot from the repositories, lets the
    :class:`SchedulingEngine` compute the new state, and writes the resulting
    change set. If a write fails the steps already applied are reverted.
    """

    def __init__(
        self,
        line_repo: Optional[InMemoryRepository[ProductionLine]] = None,
        line_group_repo: Optional[InMemoryRepository[LineGroup]] = None,
        holiday_repo: Optional[InMemoryRepository[Holiday]] = None,
        holiday_assignment_repo: Optional[InMemoryRepository[HolidayLineAssignment]] = None,
        ramp_up_plan_repo: Optional[InMemoryRepository[RampUpPlan]] = None,
        order_repo: Optional[InMemoryRepository[Order]] = None,
        planned_production_repo: Optional[InMemoryRepository[PlannedProduction]] = None,
        purchase_repo: Optional[InMemoryRepository[Purchase]] = None,
        split_family_repo: Optional[InMemoryRepository[SplitFamily]] = None,
        *,
        options: Optional[PlanningOptions] = None,
    ) -> None:
        self.lines = _repository(line_repo)
        self.line_groups = _repository(line_group_repo)
        self.holidays = _repository(holiday_repo)
        self.holiday_assignments = _repository(holiday_assignment_repo)
        self.ramp_up_plans = _repository(ramp_up_plan_repo)
        self.orders = _repository(order_repo)
        self.planned_production = _repository(planned_production_repo)
        self.purchases = _repository(purchase_repo)
        self.split_families = _repository(split_family_repo)
        self.planning_options = options or PlanningOptions()

    @classmethod
    def from_database(cls, database, *, options: Optional[PlanningOptions] = None) -> "PlannerService":
        return cls(
            line_repo=database.lines,
            line_group_repo=database.line_groups,
            holiday_repo=database.holidays,
            holiday_assignment_repo=database.holiday_assignments,
            ramp_up_plan_repo=database.ramp_up_plans,
            order_repo=database.orders,
            planned_production_repo=database.planned_production,
            purchase_repo=database.purchases,
            split_family_repo=database.split_families,
            options=options,
        )

    # ------------------------------------------------------------------
    # Master data
    # ------------------------------------------------------------------
    def create_line_group(self, name: str, *, sort_order: int = 0) -> LineGroup:
        group = LineGroup(id=str(uuid4()), name=name, sort_order=sort_order)
        self.line_groups.add(group.id, group)
        return group

    def register_line(
        self,
        name: str,
        capacity: int,
        *,
        group_id: Optional[str] = None,
        status: LineStatus = LineStatus.ACTIVE,
        sort_order: Optional[int] = None,
        description: str = "",
    ) -> ProductionLine:
        if group_id is not None and group_id not in self.line_groups:
            raise NotFound("Line group", group_id)
        line = ProductionLine(
            id=str(uuid4()),
            name=name,
            capacity=capacity,
            group_id=group_id,
            status=status,
            sort_order=len(self.lines) if sort_order is None else sort_order,
            description=description,
        )
        self.lines.add(line.id, line)
        return line

    def set_line_status(self, line_id: str, status: LineStatus) -> ProductionLine:
        line = self._get(self.lines, "Production line", line_id)
        line.status = status
        self.lines.upsert(line.id, line)
        return line

    def sorted_lines(self) -> List[ProductionLine]:
        return sorted(self.lines.list(), key=lambda line: (line.sort_order, line.name))

    def add_holiday(
        self,
        day: date,
        name: str,
        *,
        is_global: bool = True,
        line_ids: Sequence[str] = (),
    ) -> Holiday:
        if self.holidays.find(date=day, name=name):
            raise DuplicateRecordError(f"Holiday {name!r} on {day:%Y-%m-%d} already exists")
        for line_id in line_ids:
            self._get(self.lines, "Production line", line_id)
        holiday = Holiday(id=str(uuid4()), date=day, name=name, is_global=is_global)
        self.holidays.add(holiday.id, holiday)
        for line_id in dict.fromkeys(line_ids):
            self.assign_holiday_to_line(holiday.id, line_id)
        logger.info("Added holiday %s on %s (global=%s)", name, day, is_global)
        return holiday

    def assign_holiday_to_line(self, holiday_id: str, line_id: str) -> HolidayLineAssignment:
        self._get(self.holidays, "Holiday", holiday_id)
        self._get(self.lines, "Production line", line_id)
        existing = self.holiday_assignments.find(holiday_id=holiday_id, line_id=line_id)
        if existing:
            return existing[0]
        assignment = HolidayLineAssignment(
            id=str(uuid4()), holiday_id=holiday_id, line_id=line_id
        )
        self.holiday_assignments.add(assignment.id, assignment)
        return assignment

    def remove_holiday(self, holiday_id: str) -> None:
        self._get(self.holidays, "Holiday", holiday_id)
        for assignment in self.holiday_assignments.find(holiday_id=holiday_id):
            self.holiday_assignments.remove(assignment.id)
        self.holidays.remove(holiday_id)

    def create_ramp_up_plan(
        self,
        name: str,
        points: Iterable[Tuple[int, float]],
        *,
        final_efficiency: float = 100.0,
    ) -> RampUpPlan:
        plan = RampUpPlan(
            id=str(uuid4()),
            name=name,
            points=tuple(RampUpPoint(day, efficiency) for day, efficiency in points),
            final_efficiency=final_efficiency,
        )
        self.ramp_up_plans.add(plan.id, plan)
        return plan

    def create_order(
        self,
        po_number: str,
        style_id: str,
        order_quantity: int,
        *,
        cut_quantity: int = 0,
        issue_quantity: int = 0,
        smv: float = 0.0,
        mo_count: int = 0,
        purchase_id: Optional[str] = None,
    ) -> Order:
        if self.orders.find(po_number=po_number):
            raise DuplicateRecordError(f"Order {po_number!r} already exists")
        order = Order(
            id=str(uuid4()),
            po_number=po_number,
            style_id=style_id,
            order_quantity=order_quantity,
            cut_quantity=cut_quantity,
            issue_quantity=issue_quantity,
            smv=smv,
            mo_count=mo_count,
            purchase_id=purchase_id,
        )
        self.orders.add(order.id, order)
        return order

    def register_purchase(
        self,
        po_number: str,
        supplier: str,
        total_quantity: int,
        order_date: date,
        *,
        delivery_date: Optional[date] = None,
    ) -> Purchase:
        if total_quantity <= 0:
            raise ValueError("Purchase quantity must be positive")
        purchase = Purchase(
            id=str(uuid4()),
            po_number=po_number,
            supplier=supplier,
            total_quantity=total_quantity,
            order_date=order_date,
            delivery_date=delivery_date,
        )
        self.purchases.add(purchase.id, purchase)
        return purchase

    def create_order_from_purchase(
        self,
        purchase_id: str,
        style_id: str,
        *,
        smv: float = 0.0,
        mo_count: int = 0,
    ) -> Order:
        purchase = self._get(self.purchases, "Purchase", purchase_id)
        return self.create_order(
            purchase.po_number,
            style_id,
            purchase.total_quantity,
            smv=smv,
            mo_count=mo_count,
            purchase_id=purchase.id,
        )

    def record_cut_issue(
        self,
        order_id: str,
        *,
        cut_quantity: Optional[int] = None,
        issue_quantity: Optional[int] = None,
    ) -> Order:
        """Store the cutting and issue totals reported by the cutting room."""

        order = self._get(self.orders, "Order", order_id)
        if cut_quantity is not None:
            if cut_quantity < 0:
                raise ValueError("Cut quantity cannot be negative")
            order.cut_quantity = cut_quantity
        if issue_quantity is not None:
            if issue_quantity < 0:
                raise ValueError("Issue quantity cannot be negative")
            order.issue_quantity = issue_quantity
        self.orders.upsert(order.id, order)
        return order

    # ------------------------------------------------------------------
    # Planning options
    # ------------------------------------------------------------------
    def update_planning_options(
        self,
        *,
        horizon_days: int,
        allow_overbooking: bool,
        default_ramp_up_plan_id: Optional[str] = None,
        capacity_basis: CapacityBasis = CapacityBasis.LINE,
    ) -> PlanningOptions:
        if horizon_days <= 0:
            raise ValueError("The scheduling horizon must span at least one day")
        if default_ramp_up_plan_id is not None:
            self._get(self.ramp_up_plans, "Ramp-up plan", default_ramp_up_plan_id)
        self.planning_options = PlanningOptions(
            horizon_days=horizon_days,
            allow_overbooking=allow_overbooking,
            default_ramp_up_plan_id=default_ramp_up_plan_id,
            capacity_basis=CapacityBasis(capacity_basis),
        )
        return self.planning_options

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------
    def calendar(self) -> HolidayCalendar:
        return HolidayCalendar(self.holidays.list(), self.holiday_assignments.list())

    def engine(self) -> SchedulingEngine:
        return SchedulingEngine(
            self.lines.list(),
            self.calendar(),
            self.planned_production.list(),
            self.orders.list(),
            self.ramp_up_plans.list(),
            self.split_families.list(),
            horizon_days=self.planning_options.horizon_days,
        )

    def is_holiday(self, line_id: str, day: date) -> bool:
        return self.engine().is_holiday(line_id, day)

    def available_capacity(self, line_id: str, day: date) -> int:
        return self.engine().available_capacity(line_id, day)

    def utilization(self, line_id: str, day: date) -> float:
        return self.engine().utilization(line_id, day)

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------
    def place_order(
        self,
        order_id: str,
        line_id: str,
        start_date: date,
        *,
        ramp_up_plan_id: Optional[str] = None,
        allow_overbooking: Optional[bool] = None,
        horizon_days: Optional[int] = None,
        capacity_basis: Optional[CapacityBasis] = None,
    ) -> PlacementResult:
        result = self.engine().place(
            order_id,
            line_id,
            start_date,
            ramp_up_plan_id=ramp_up_plan_id or self.planning_options.default_ramp_up_plan_id,
            horizon_days=horizon_days,
            allow_overbooking=self._overbooking(allow_overbooking),
            capacity_basis=capacity_basis or self.planning_options.capacity_basis,
        )
        self._apply(result.changes)
        logger.info(
            "Placed %s on line %s from %s to %s (%s days)",
            result.order.po_number,
            line_id,
            result.order.plan_start_date,
            result.order.plan_end_date,
            len(result.entries),
        )
        return result

    def drop_order(self, order_id: str) -> Order:
        changes = self.engine().drop(order_id)
        self._apply(changes)
        order = changes.orders[0]
        logger.info("Moved %s back to pending", order.po_number)
        return order

    def move_order(
        self,
        order_id: str,
        line_id: str,
        start_date: date,
        *,
        ramp_up_plan_id: Optional[str] = None,
        allow_overbooking: Optional[bool] = None,
        horizon_days: Optional[int] = None,
        capacity_basis: Optional[CapacityBasis] = None,
    ) -> PlacementResult:
        result = self.engine().move(
            order_id,
            line_id,
            start_date,
            ramp_up_plan_id=ramp_up_plan_id,
            horizon_days=horizon_days,
            allow_overbooking=self._overbooking(allow_overbooking),
            capacity_basis=capacity_basis,
        )
        self._apply(result.changes)
        logger.info(
            "Moved %s to line %s starting %s",
            result.order.po_number,
            line_id,
            result.order.plan_start_date,
        )
        return result

    def place_around_overlap(
        self,
        order_id: str,
        line_id: str,
        target_date: date,
        position: OverlapPosition,
        *,
        ramp_up_plan_id: Optional[str] = None,
        allow_overbooking: Optional[bool] = None,
        horizon_days: Optional[int] = None,
        capacity_basis: Optional[CapacityBasis] = None,
    ) -> PlacementResult:
        """Place an order before or after the orders occupying ``target_date``."""

        order = self._get(self.orders, "Order", order_id)
        if order.placement is None:
            ramp_up_plan_id = ramp_up_plan_id or self.planning_options.default_ramp_up_plan_id
            capacity_basis = capacity_basis or self.planning_options.capacity_basis
        result = self.engine().place_around_overlap(
            order_id,
            line_id,
            target_date,
            position,
            ramp_up_plan_id=ramp_up_plan_id,
            horizon_days=horizon_days,
            allow_overbooking=self._overbooking(allow_overbooking),
            capacity_basis=capacity_basis,
        )
        self._apply(result.changes)
        logger.info(
            "Placed %s %s the orders on line %s from %s; %s other orders re-placed",
            result.order.po_number,
            OverlapPosition(position).value,
            line_id,
            result.order.plan_start_date,
            len(result.changes.orders) - 1,
        )
        return result

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
        return self.engine().detect_overlap(
            order_id,
            line_id,
            start_date,
            ramp_up_plan_id=ramp_up_plan_id or self.planning_options.default_ramp_up_plan_id,
            horizon_days=horizon_days,
            capacity_basis=capacity_basis or self.planning_options.capacity_basis,
        )

    def split_order(self, order_id: str, split_quantity: int) -> SplitResult:
        result = self.engine().split(order_id, split_quantity)
        self._apply(result.changes)
        logger.info(
            "Split %s pieces off %s into %s",
            split_quantity,
            result.original.po_number,
            result.fragment.po_number,
        )
        return result

    def merge_fragment(self, fragment_id: str, into_order_id: Optional[str] = None) -> Order:
        changes = self.engine().merge(fragment_id, into_order_id)
        self._apply(changes)
        merged = changes.orders[0]
        logger.info("Merged fragment %s into %s", fragment_id, merged.po_number)
        return merged

    def change_order_quantity(self, order_id: str, quantity: int) -> Order:
        changes = self.engine().change_quantity(order_id, quantity)
        self._apply(changes)
        return changes.orders[0]

    def record_output(self, order_id: str, day: date, quantity: int) -> Order:
        """Book sewing output for an order on a given day."""

        changes = self.engine().record_output(order_id, day, quantity)
        self._apply(changes)
        order = changes.orders[0]
        logger.info(
            "Recorded %s pieces for %s on %s (%s/%s)",
            quantity,
            order.po_number,
            day,
            order.produced_quantity,
            order.order_quantity,
        )
        return order

    def replan_line(self, line_id: str, *, allow_overbooking: Optional[bool] = None) -> ChangeSet:
        changes = self.engine().replan_line(
            line_id, allow_overbooking=self._overbooking(allow_overbooking)
        )
        self._apply(changes)
        logger.info("Replanned %s orders on line %s", len(changes.orders), line_id)
        return changes

    def update_line_capacity(self, line_id: str, capacity: int) -> ProductionLine:
        """Change a line's daily capacity and re-plan every order on it."""

        if capacity <= 0:
            raise ValueError("Line capacity must be a positive number of pieces")
        changes = self.engine().replan_line(
            line_id,
            capacity=capacity,
            allow_overbooking=self.planning_options.allow_overbooking,
        )
        self._apply(changes)
        logger.info("Line %s capacity set to %s", line_id, capacity)
        return self.lines.get(line_id)

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------
    def utilization_report(
        self,
        start: date,
        end: date,
        *,
        line_ids: Optional[Sequence[str]] = None,
    ) -> List[LineUtilization]:
        if end < start:
            raise ValueError("Report end date lies before its start date")
        engine = self.engine()
        lines = self.sorted_lines()
        if line_ids is not None:
            wanted = set(line_ids)
            missing = wanted - {line.id for line in lines}
            if missing:
                raise NotFound("Production line", sorted(missing)[0])
            lines = [line for line in lines if line.id in wanted]
        return [
            LineUtilization(
                line_id=line.id,
                line_name=line.name,
                capacity=line.capacity,
                cells=engine.cell_loads(line.id, start, end),
            )
            for line in lines
        ]

    def orders_by_status(self, status: OrderStatus) -> List[Order]:
        orders = self.orders.find(status=status)
        orders.sort(key=lambda order: (order.plan_start_date or date.max, order.po_number))
        return orders

    def order_plan(self, order_id: str) -> List[PlannedProduction]:
        self._get(self.orders, "Order", order_id)
        entries = self.planned_production.find(order_id=order_id)
        entries.sort(key=lambda entry: (entry.planned_date, entry.order_index))
        return entries

    def line_plan(
        self,
        line_id: str,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> List[PlannedProduction]:
        self._get(self.lines, "Production line", line_id)
        entries = [
            entry
            for entry in self.planned_production.find(line_id=line_id)
            if (start is None or entry.planned_date >= start)
            and (end is None or entry.planned_date <= end)
        ]
        entries.sort(key=lambda entry: (entry.planned_date, entry.order_index))
        return entries

    def planned_minutes(self, line_id: str, start: date, end: date) -> Dict[date, float]:
        """Standard minutes (quantity x SMV) planned per day on a line."""

        orders = {order.id: order for order in self.orders.list()}
        minutes: Dict[date, float] = {}
        for entry in self.line_plan(line_id, start, end):
            order = orders.get(entry.order_id)
            smv = order.smv if order else 0.0
            minutes[entry.planned_date] = minutes.get(entry.planned_date, 0.0) + (
                entry.planned_quantity * smv
            )
        return minutes

    def split_family(self, base_po_number: str) -> SplitFamilyView:
        engine = self.engine()
        bookkeeper = engine.bookkeeper
        members = bookkeeper.members(base_po_number)
        if not members:
            raise NotFound("Split family", base_po_number)
        family = bookkeeper.family(base_po_number)
        root = next((order for order in members if not order.is_fragment), None)
        fragments = [order for order in members if order.is_fragment]
        original = (
            family.original_quantity
            if family is not None
            else sum(order.order_quantity for order in members)
        )
        return SplitFamilyView(base_po_number, original, root, fragments)

    def split_ancestry(self, order_id: str) -> SplitFamilyView:
        order = self._get(self.orders, "Order", order_id)
        return self.split_family(order.family_po_number)

    def verify_split_families(self) -> None:
        self.engine().bookkeeper.verify_all()

    def holiday_conflicts(self) -> List[PlannedProduction]:
        return self.engine().holiday_conflicts()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    @staticmethod
    def _get(repo, kind: str, item_id: str):
        if item_id not in repo:
            raise NotFound(kind, item_id)
        return repo.get(item_id)

    def _overbooking(self, allow_overbooking: Optional[bool]) -> bool:
        if allow_overbooking is None:
            return self.planning_options.allow_overbooking
        return allow_overbooking

    def _purchase_updates(self, changes: ChangeSet) -> List[Purchase]:
        """Derive purchase states from the orders they feed after ``changes``."""

        purchase_ids = {order.purchase_id for order in changes.orders if order.purchase_id}
        if not purchase_ids:
            return []
        changed = {order.id: order for order in changes.orders}
        removed = set(changes.removed_order_ids)
        updates: List[Purchase] = []
        for purchase_id in purchase_ids:
            if purchase_id not in self.purchases:
                continue
            orders = [
                changed.get(order.id, order)
                for order in self.orders.find(purchase_id=purchase_id)
                if order.id not in removed
            ]
            orders.extend(
                order
                for order in changes.orders
                if order.purchase_id == purchase_id and order.id not in self.orders
            )
            if orders and all(order.status == OrderStatus.COMPLETED for order in orders):
                status = PurchaseStatus.COMPLETED
            elif any(order.status in PLACED_STATUSES | {OrderStatus.COMPLETED} for order in orders):
                status = PurchaseStatus.PLANNED
            else:
                status = PurchaseStatus.PENDING
            purchase = self.purchases.get(purchase_id)
            if purchase.status != status:
                updates.append(replace(purchase, status=status))
        return updates

    def _apply(self, changes: ChangeSet) -> None:
        """Write a change set, reverting the applied steps if a write fails."""

        undo: List[Callable[[], None]] = []

        def upsert(repo, item_id: str, item) -> None:
            previous = repo.get(item_id) if item_id in repo else None
            repo.upsert(item_id, item)
            if previous is None:
                undo.append(lambda: repo.remove(item_id))
            else:
                undo.append(lambda: repo.upsert(item_id, previous))

        def remove(repo, item_id: str) -> None:
            if item_id not in repo:
                return
            previous = repo.get(item_id)
            repo.remove(item_id)
            undo.append(lambda: repo.upsert(item_id, previous))

        purchases = self._purchase_updates(changes)
        try:
            for line in changes.lines:
                upsert(self.lines, line.id, line)
            for family in changes.families:
                upsert(self.split_families, family.base_po_number, family)
            for order in changes.orders:
                upsert(self.orders, order.id, order)
            for entry_id in changes.removed_entry_ids:
                remove(self.planned_production, entry_id)
            for entry in changes.entries:
                upsert(self.planned_production, entry.id, entry)
            for order_id in changes.removed_order_ids:
                remove(self.orders, order_id)
            for family_id in changes.removed_family_ids:
                remove(self.split_families, family_id)
            for purchase in purchases:
                upsert(self.purchases, purchase.id, purchase)
        except Exception:
            logger.exception("Write failed after %s steps; reverting", len(undo))
            for step in reversed(undo):
                try:
                    step()
                except Exception:
                    logger.exception("Could not revert a planner write")
            raise


__all__ = [
    "PlannerService",
    "PlanningOptions",
    "LineUtilization",
    "SplitFamilyView",
]
