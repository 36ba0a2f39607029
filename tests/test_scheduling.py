from datetime import date

import pytest

from line_planner.domain import (
    CapacityBasis,
    Holiday,
    LineStatus,
    Order,
    OrderStatus,
    ProductionLine,
    RampUpPlan,
    RampUpPoint,
)
from line_planner.errors import CapacityExceeded, HolidayOnly, InvalidTransition, LineUnavailable
from line_planner.holiday_calendar import HolidayCalendar
from line_planner.scheduling import OverlapPosition, SchedulingEngine

JAN_1 = date(2024, 1, 1)


def d(day: int) -> date:
    return date(2024, 1, day)


def build_engine(*orders, holidays=(), entries=(), ramp_up_plans=(), horizon_days=365):
    lines = [ProductionLine("L1", "Line 1", 100), ProductionLine("L2", "Line 2", 80)]
    return SchedulingEngine(
        lines,
        HolidayCalendar(holidays),
        entries,
        orders,
        ramp_up_plans,
        horizon_days=horizon_days,
    )


def test_spreads_quantity_over_consecutive_days():
    engine = build_engine(Order("o1", "PO-1", "TEE", 250))

    result = engine.place("o1", "L1", JAN_1)

    assert result.daily_plan == {d(1): 100, d(2): 100, d(3): 50}
    assert result.order.status == OrderStatus.SCHEDULED
    assert result.order.plan_start_date == d(1)
    assert result.order.plan_end_date == d(3)


def test_skips_global_holidays():
    engine = build_engine(
        Order("o1", "PO-1", "TEE", 250), holidays=[Holiday("h1", d(2), "Bank holiday")]
    )

    result = engine.place("o1", "L1", JAN_1)

    assert result.daily_plan == {d(1): 100, d(3): 100, d(4): 50}


@pytest.mark.parametrize("quantity, days", [(1, 1), (100, 1), (101, 2), (799, 8)])
def test_empty_line_needs_ceiling_of_quantity_over_capacity(quantity, days):
    engine = build_engine(Order("o1", "PO-1", "TEE", quantity))

    result = engine.place("o1", "L1", JAN_1)

    assert len(result.entries) == days
    assert sum(result.daily_plan.values()) == quantity


def test_placement_does_not_mutate_snapshot():
    order = Order("o1", "PO-1", "TEE", 250)
    engine = build_engine(order)

    engine.place("o1", "L1", JAN_1)

    assert order.status == OrderStatus.PENDING
    assert order.placement is None
    assert engine.available_capacity("L1", JAN_1) == 100


def test_second_order_fills_remaining_capacity():
    engine = build_engine(Order("o1", "PO-1", "TEE", 250), Order("o2", "PO-2", "POLO", 100))
    first = engine.place("o1", "L1", JAN_1)
    engine.accountant.commit(first.entries)

    second = engine.place("o2", "L1", JAN_1)

    assert second.daily_plan == {d(3): 50, d(4): 50}
    assert second.order.plan_start_date == d(3)
    assert [entry.order_index for entry in second.entries] == [1, 0]


def test_overbooking_ignores_commitments():
    engine = build_engine(Order("o1", "PO-1", "TEE", 100), Order("o2", "PO-2", "POLO", 100))
    engine.accountant.commit(engine.place("o1", "L1", JAN_1).entries)

    result = engine.place("o2", "L1", JAN_1, allow_overbooking=True)
    engine.accountant.commit(result.entries)

    assert result.daily_plan == {d(1): 100}
    assert engine.utilization("L1", JAN_1) == pytest.approx(200.0)


def test_ramp_up_limits_early_days_and_skips_holidays():
    plan = RampUpPlan("r1", "New style", (RampUpPoint(0, 50.0), RampUpPoint(1, 75.0)))
    engine = build_engine(
        Order("o1", "PO-1", "TEE", 250),
        holidays=[Holiday("h1", d(2), "Bank holiday")],
        ramp_up_plans=[plan],
    )

    result = engine.place("o1", "L1", JAN_1, ramp_up_plan_id="r1")

    assert result.daily_plan == {d(1): 50, d(3): 75, d(4): 100, d(5): 25}
    assert [entry.ramp_day for entry in result.entries] == [0, 1, 2, 3]
    assert result.order.placement.ramp_up_plan_id == "r1"


def test_capacity_exceeded_within_horizon():
    engine = build_engine(Order("o1", "PO-1", "TEE", 250), horizon_days=2)

    with pytest.raises(CapacityExceeded) as excinfo:
        engine.place("o1", "L1", JAN_1)

    assert excinfo.value.shortfall == 50
    assert excinfo.value.to_dict()["start_date"] == "2024-01-01"


def test_holiday_only_horizon():
    engine = build_engine(
        Order("o1", "PO-1", "TEE", 50),
        holidays=[Holiday("h1", d(1), "Closed"), Holiday("h2", d(2), "Closed")],
        horizon_days=2,
    )

    with pytest.raises(HolidayOnly):
        engine.place("o1", "L1", JAN_1)


def test_only_pending_orders_can_be_placed():
    engine = build_engine(Order("o1", "PO-1", "TEE", 50))
    placed = engine.place("o1", "L1", JAN_1).order
    engine = build_engine(placed)

    with pytest.raises(InvalidTransition):
        engine.place("o1", "L1", JAN_1)


def test_inactive_line_rejects_orders():
    engine = SchedulingEngine(
        [ProductionLine("L1", "Line 1", 100, status=LineStatus.MAINTENANCE)],
        HolidayCalendar(),
        orders=[Order("o1", "PO-1", "TEE", 50)],
    )

    with pytest.raises(LineUnavailable):
        engine.place("o1", "L1", JAN_1)


def test_overlap_report_names_conflicting_orders():
    engine = build_engine(Order("o1", "PO-1", "TEE", 250), Order("o2", "PO-2", "POLO", 150))
    engine.accountant.commit(engine.place("o1", "L1", JAN_1).entries)

    report = engine.detect_overlap("o2", "L1", JAN_1)

    assert report.overlaps
    assert report.shortfalls == {d(1): 100, d(2): 50}
    assert report.conflicting_order_ids == ["o1"]

    clear = engine.detect_overlap("o2", "L1", d(4))
    assert not clear.overlaps
    assert clear.conflicting_order_ids == []


def test_holiday_conflicts_list_entries_on_new_holidays():
    engine = build_engine(Order("o1", "PO-1", "TEE", 250))
    entries = engine.place("o1", "L1", JAN_1).entries

    engine = build_engine(holidays=[Holiday("h1", d(2), "Late holiday")], entries=entries)

    assert [entry.planned_date for entry in engine.holiday_conflicts()] == [d(2)]


def test_ramp_up_day_without_capacity_still_advances_the_curve():
    plan = RampUpPlan("r1", "Trial run", (RampUpPoint(0, 5.0),))
    engine = SchedulingEngine(
        [ProductionLine("L1", "Line 1", 10)],
        HolidayCalendar(),
        orders=[Order("o1", "PO-1", "TEE", 30)],
        ramp_up_plans=[plan],
    )

    result = engine.place("o1", "L1", JAN_1, ramp_up_plan_id="r1")

    assert result.daily_plan == {d(2): 10, d(3): 10, d(4): 10}
    assert [entry.ramp_day for entry in result.entries] == [1, 2, 3]


def test_day_filled_by_other_orders_does_not_advance_ramp_up():
    plan = RampUpPlan("r1", "New style", (RampUpPoint(0, 50.0),))
    engine = build_engine(
        Order("o1", "PO-1", "TEE", 100), Order("o2", "PO-2", "POLO", 100), ramp_up_plans=[plan]
    )
    engine.accountant.commit(engine.place("o1", "L1", JAN_1).entries)

    result = engine.place("o2", "L1", JAN_1, ramp_up_plan_id="r1")

    assert result.daily_plan == {d(2): 50, d(3): 50}
    assert [entry.ramp_day for entry in result.entries] == [0, 1]


def test_standard_minute_basis_derives_output_from_operators_and_smv():
    plan = RampUpPlan("r1", "New style", (RampUpPoint(0, 50.0),))
    # 540 minutes * 5 operators / 54 SMV = 50 pieces a day
    engine = build_engine(
        Order("o1", "PO-1", "COAT", 120, smv=54.0, mo_count=5), ramp_up_plans=[plan]
    )

    result = engine.place(
        "o1", "L1", JAN_1, ramp_up_plan_id="r1", capacity_basis=CapacityBasis.STANDARD_MINUTES
    )

    assert result.daily_plan == {d(1): 25, d(2): 50, d(3): 45}
    assert result.order.placement.capacity_basis == CapacityBasis.STANDARD_MINUTES


def test_standard_minute_basis_is_bounded_by_free_line_capacity():
    engine = build_engine(Order("o1", "PO-1", "TEE", 250, smv=5.0, mo_count=10))

    result = engine.place("o1", "L1", JAN_1, capacity_basis=CapacityBasis.STANDARD_MINUTES)

    assert result.daily_plan == {d(1): 100, d(2): 100, d(3): 50}


def test_standard_minute_basis_needs_smv_and_operators():
    engine = build_engine(Order("o1", "PO-1", "TEE", 50))

    with pytest.raises(ValueError):
        engine.place("o1", "L1", JAN_1, capacity_basis=CapacityBasis.STANDARD_MINUTES)


@pytest.mark.parametrize("horizon_days", [0, -3])
def test_non_positive_horizon_is_rejected(horizon_days):
    engine = build_engine(Order("o1", "PO-1", "TEE", 50))

    with pytest.raises(ValueError):
        engine.place("o1", "L1", JAN_1, horizon_days=horizon_days)
    with pytest.raises(ValueError):
        engine.detect_overlap("o1", "L1", JAN_1, horizon_days=horizon_days)


def engine_with_placed_order(*pending, quantity=250):
    first = build_engine(Order("o1", "PO-1", "TEE", quantity)).place("o1", "L1", JAN_1)
    return build_engine(first.order, *pending, entries=first.entries), first


def test_place_before_pushes_colliding_orders_back():
    engine, first = engine_with_placed_order(Order("o2", "PO-2", "POLO", 150))

    result = engine.place_around_overlap("o2", "L1", JAN_1, OverlapPosition.BEFORE)

    assert result.daily_plan == {d(1): 100, d(2): 50}
    moved = {order.id: order for order in result.changes.orders}["o1"]
    assert moved.plan_start_date == d(3)
    assert moved.plan_end_date == d(5)
    moved_plan = {
        entry.planned_date: entry.planned_quantity
        for entry in result.changes.entries
        if entry.order_id == "o1"
    }
    assert moved_plan == {d(3): 100, d(4): 100, d(5): 50}
    assert sorted(result.changes.removed_entry_ids) == sorted(e.id for e in first.entries)


def test_place_after_starts_on_last_day_with_spare_capacity():
    engine, _ = engine_with_placed_order(Order("o2", "PO-2", "POLO", 150))

    result = engine.place_around_overlap("o2", "L1", JAN_1, "after")

    assert result.daily_plan == {d(3): 50, d(4): 100}
    assert [order.id for order in result.changes.orders] == ["o2"]


def test_place_after_moves_to_next_day_when_last_day_is_full():
    engine, _ = engine_with_placed_order(Order("o2", "PO-2", "POLO", 150), quantity=200)

    result = engine.place_around_overlap("o2", "L1", JAN_1, OverlapPosition.AFTER)

    assert result.daily_plan == {d(3): 100, d(4): 50}


def test_place_around_without_collision_is_a_plain_placement():
    engine, _ = engine_with_placed_order(Order("o2", "PO-2", "POLO", 150))

    result = engine.place_around_overlap("o2", "L1", d(10), OverlapPosition.BEFORE)

    assert result.daily_plan == {d(10): 100, d(11): 50}
    assert len(result.changes.orders) == 1


def test_place_around_rejects_unknown_position():
    engine, _ = engine_with_placed_order(Order("o2", "PO-2", "POLO", 150))

    with pytest.raises(ValueError):
        engine.place_around_overlap("o2", "L1", JAN_1, "middle")
