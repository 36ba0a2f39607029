from __future__ import annotations

from datetime import date

import pytest

from line_planner.services import PlannerService

JAN_1 = date(2024, 1, 1)


@pytest.fixture
def planner() -> PlannerService:
    return PlannerService()


@pytest.fixture
def line(planner):
    return planner.register_line("Line A", 100)


@pytest.fixture
def order(planner):
    return planner.create_order("PO-1", "TEE-01", 250)
