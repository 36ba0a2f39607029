from datetime import date

import pytest

from line_planner.capacity import CapacityAccountant
from line_planner.domain import Holiday, PlannedProduction, ProductionLine
from line_planner.holiday_calendar import HolidayCalendar

DAY = date(2024, 1, 1)


@pytest.fixture
def accountant():
    lines = {"L1": ProductionLine("L1", "Line 1", 100)}
    calendar = HolidayCalendar([Holiday("h1", date(2024, 1, 2), "Bank holiday")])
    entries = [
        PlannedProduction("e1", "o1", "L1", DAY, 60, order_index=0),
        PlannedProduction("e2", "o2", "L1", DAY, 30, order_index=1),
    ]
    return CapacityAccountant(lines, calendar, entries)


def test_available_capacity_subtracts_commitments(accountant):
    assert accountant.committed_load("L1", DAY) == 90
    assert accountant.available_capacity("L1", DAY) == 10
    assert accountant.available_capacity("L1", date(2024, 1, 3)) == 100


def test_available_capacity_respects_efficiency(accountant):
    assert accountant.available_capacity("L1", date(2024, 1, 3), 50.0) == 50
    assert accountant.available_capacity("L1", DAY, 50.0) == 0


def test_holiday_has_no_capacity(accountant):
    assert accountant.available_capacity("L1", date(2024, 1, 2)) == 0
    assert accountant.utilization("L1", date(2024, 1, 2)) == 0.0


def test_utilization_is_uncapped(accountant):
    accountant.commit([PlannedProduction("e3", "o3", "L1", DAY, 40, order_index=2)])

    assert accountant.utilization("L1", DAY) == pytest.approx(130.0)
    assert accountant.is_overbooked("L1", DAY)
    assert accountant.available_capacity("L1", DAY) == 0


def test_copy_excludes_orders_without_touching_original(accountant):
    scratch = accountant.copy(exclude_order_ids=["o1"])

    assert scratch.committed_load("L1", DAY) == 30
    assert accountant.committed_load("L1", DAY) == 90


def test_release_frees_capacity(accountant):
    accountant.release("o2")

    assert accountant.available_capacity("L1", DAY) == 40
    assert accountant.next_order_index("L1", DAY) == 1


def test_cell_load_lists_orders_in_sequence(accountant):
    cell = accountant.cell_load("L1", DAY)

    assert cell.order_ids == ("o1", "o2")
    assert cell.committed == 90
    assert cell.available == 10
    assert not cell.is_holiday
    assert accountant.conflicting_order_ids("L1", DAY, ignore_order_id="o1") == ["o2"]
