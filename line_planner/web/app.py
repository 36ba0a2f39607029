"""FastAPI-based HTTP interface for the line planner."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from fastapi import FastAPI, Form, Query, Request
from fastapi.responses import JSONResponse

from ..config import PlannerSettings, configure_logging
from ..domain import (
    CapacityBasis,
    Holiday,
    LineStatus,
    Order,
    OrderStatus,
    PlannedProduction,
    ProductionLine,
    Purchase,
    RampUpPlan,
)
from ..errors import (
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
from ..repository import DuplicateRecordError, RecordNotFoundError
from ..scheduling import OverlapPosition, OverlapReport, PlacementResult
from ..services import LineUtilization, PlannerService, PlanningOptions, SplitFamilyView
from ..storage import PlannerDatabase

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    NotFound: 404,
    CapacityExceeded: 409,
    HolidayOnly: 409,
    InvalidTransition: 409,
    LineUnavailable: 409,
    InvalidSplitQuantity: 422,
    ProductionExceedsOrder: 422,
    InvariantViolation: 500,
}


def create_app(
    database_path: Optional[str] = None,
    settings: Optional[PlannerSettings] = None,
) -> FastAPI:
    settings = settings or PlannerSettings.from_env()
    configure_logging(settings)
    database = PlannerDatabase(database_path or settings.database_path)
    service = PlannerService.from_database(
        database,
        options=PlanningOptions(
            horizon_days=settings.horizon_days,
            allow_overbooking=settings.allow_overbooking,
        ),
    )
    if settings.seed_demo_data:
        ensure_demo_data(service)

    app = FastAPI(title="Garment Line Planner")
    app.state.planner_service = service
    app.state.database = database

    @app.on_event("shutdown")
    async def shutdown_event() -> None:  # pragma: no cover - framework hook
        database.close()

    @app.exception_handler(PlanningError)
    async def planning_error_handler(request: Request, exc: PlanningError):
        status = ERROR_STATUS.get(type(exc), 400)
        if status >= 500:
            logger.error("Planner invariant broken on %s: %s", request.url.path, exc)
        else:
            logger.warning("Rejected %s: %s", request.url.path, exc)
        return JSONResponse(exc.to_dict(), status_code=status)

    @app.exception_handler(RecordNotFoundError)
    async def not_found_handler(request: Request, exc: RecordNotFoundError):
        return JSONResponse({"error": "not_found", "message": str(exc)}, status_code=404)

    @app.exception_handler(DuplicateRecordError)
    async def duplicate_handler(request: Request, exc: DuplicateRecordError):
        return JSONResponse({"error": "duplicate", "message": str(exc)}, status_code=409)

    @app.exception_handler(ValueError)
    async def invalid_input_handler(request: Request, exc: ValueError):
        return JSONResponse({"error": "invalid_input", "message": str(exc)}, status_code=422)

    def planner(request: Request) -> PlannerService:
        return request.app.state.planner_service

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        return {"ok": True, "service": "line-planner"}

    @app.get("/planning-options")
    async def get_planning_options(request: Request):
        return options_payload(planner(request).planning_options)

    @app.post("/planning-options")
    async def update_planning_options(
        request: Request,
        horizon_days: int = Form(...),
        allow_overbooking: bool = Form(False),
        default_ramp_up_plan_id: Optional[str] = Form(None),
        capacity_basis: str = Form(CapacityBasis.LINE.value),
    ):
        options = planner(request).update_planning_options(
            horizon_days=horizon_days,
            allow_overbooking=allow_overbooking,
            default_ramp_up_plan_id=default_ramp_up_plan_id or None,
            capacity_basis=CapacityBasis(capacity_basis),
        )
        return options_payload(options)

    # ------------------------------------------------------------------
    # Lines
    # ------------------------------------------------------------------
    @app.get("/lines")
    async def list_lines(request: Request):
        return [line_payload(line) for line in planner(request).sorted_lines()]

    @app.post("/lines", status_code=201)
    async def create_line(
        request: Request,
        name: str = Form(...),
        capacity: int = Form(...),
        group_id: Optional[str] = Form(None),
        description: str = Form(""),
    ):
        line = planner(request).register_line(
            name, capacity, group_id=group_id or None, description=description
        )
        return line_payload(line)

    @app.post("/lines/{line_id}/capacity")
    async def update_capacity(line_id: str, request: Request, capacity: int = Form(...)):
        return line_payload(planner(request).update_line_capacity(line_id, capacity))

    @app.post("/lines/{line_id}/status")
    async def update_status(line_id: str, request: Request, status: str = Form(...)):
        return line_payload(planner(request).set_line_status(line_id, LineStatus(status)))

    @app.post("/lines/{line_id}/replan")
    async def replan(line_id: str, request: Request):
        changes = planner(request).replan_line(line_id)
        return {"line_id": line_id, "orders": [order_payload(order) for order in changes.orders]}

    @app.get("/lines/{line_id}/plan")
    async def line_plan(
        line_id: str,
        request: Request,
        start: Optional[str] = None,
        end: Optional[str] = None,
    ):
        entries = planner(request).line_plan(line_id, parse_optional_date(start), parse_optional_date(end))
        return [entry_payload(entry) for entry in entries]

    @app.get("/line-groups")
    async def list_line_groups(request: Request):
        groups = sorted(planner(request).line_groups.list(), key=lambda group: group.sort_order)
        return [
            {"id": group.id, "name": group.name, "is_expanded": group.is_expanded, "sort_order": group.sort_order}
            for group in groups
        ]

    @app.post("/line-groups", status_code=201)
    async def create_line_group(request: Request, name: str = Form(...), sort_order: int = Form(0)):
        group = planner(request).create_line_group(name, sort_order=sort_order)
        return {"id": group.id, "name": group.name, "sort_order": group.sort_order}

    # ------------------------------------------------------------------
    # Holidays and ramp-up plans
    # ------------------------------------------------------------------
    @app.get("/holidays")
    async def list_holidays(request: Request):
        service = planner(request)
        holidays = sorted(service.holidays.list(), key=lambda holiday: holiday.date)
        return [holiday_payload(service, holiday) for holiday in holidays]

    @app.post("/holidays", status_code=201)
    async def create_holiday(
        request: Request,
        day: str = Form(...),
        name: str = Form(...),
        is_global: bool = Form(True),
        line_ids: str = Form(""),
    ):
        service = planner(request)
        holiday = service.add_holiday(
            parse_date(day), name, is_global=is_global, line_ids=split_csv(line_ids)
        )
        return holiday_payload(service, holiday)

    @app.delete("/holidays/{holiday_id}", status_code=204)
    async def delete_holiday(holiday_id: str, request: Request):
        planner(request).remove_holiday(holiday_id)

    @app.get("/holidays/conflicts")
    async def holiday_conflicts(request: Request):
        return [entry_payload(entry) for entry in planner(request).holiday_conflicts()]

    @app.get("/ramp-up-plans")
    async def list_ramp_up_plans(request: Request):
        return [ramp_up_payload(plan) for plan in planner(request).ramp_up_plans.list()]

    @app.post("/ramp-up-plans", status_code=201)
    async def create_ramp_up_plan(
        request: Request,
        name: str = Form(...),
        points: str = Form(""),
        final_efficiency: float = Form(100.0),
    ):
        plan = planner(request).create_ramp_up_plan(
            name, parse_ramp_points(points), final_efficiency=final_efficiency
        )
        return ramp_up_payload(plan)

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------
    @app.get("/orders")
    async def list_orders(request: Request, status: Optional[str] = None):
        service = planner(request)
        if status:
            orders = service.orders_by_status(OrderStatus(status))
        else:
            orders = sorted(service.orders.list(), key=lambda order: order.po_number)
        return [order_payload(order) for order in orders]

    @app.post("/orders", status_code=201)
    async def create_order(
        request: Request,
        po_number: str = Form(...),
        style_id: str = Form(...),
        order_quantity: int = Form(...),
        smv: float = Form(0.0),
        mo_count: int = Form(0),
    ):
        order = planner(request).create_order(
            po_number, style_id, order_quantity, smv=smv, mo_count=mo_count
        )
        return order_payload(order)

    @app.get("/orders/{order_id}")
    async def get_order(order_id: str, request: Request):
        service = planner(request)
        order = service.orders.get(order_id)
        payload = order_payload(order)
        payload["plan"] = [entry_payload(entry) for entry in service.order_plan(order_id)]
        return payload

    @app.post("/orders/{order_id}/place")
    async def place_order(
        order_id: str,
        request: Request,
        line_id: str = Form(...),
        start_date: str = Form(...),
        ramp_up_plan_id: Optional[str] = Form(None),
        allow_overbooking: Optional[bool] = Form(None),
        capacity_basis: Optional[str] = Form(None),
        position: Optional[str] = Form(None),
    ):
        service = planner(request)
        options = dict(
            ramp_up_plan_id=ramp_up_plan_id or None,
            allow_overbooking=allow_overbooking,
            capacity_basis=parse_capacity_basis(capacity_basis),
        )
        if position:
            result = service.place_around_overlap(
                order_id, line_id, parse_date(start_date), OverlapPosition(position), **options
            )
        else:
            result = service.place_order(order_id, line_id, parse_date(start_date), **options)
        return placement_payload(result)

    @app.post("/orders/{order_id}/drop")
    async def drop_order(order_id: str, request: Request):
        return order_payload(planner(request).drop_order(order_id))

    @app.post("/orders/{order_id}/move")
    async def move_order(
        order_id: str,
        request: Request,
        line_id: str = Form(...),
        start_date: str = Form(...),
        ramp_up_plan_id: Optional[str] = Form(None),
        allow_overbooking: Optional[bool] = Form(None),
        capacity_basis: Optional[str] = Form(None),
    ):
        result = planner(request).move_order(
            order_id,
            line_id,
            parse_date(start_date),
            ramp_up_plan_id=ramp_up_plan_id or None,
            allow_overbooking=allow_overbooking,
            capacity_basis=parse_capacity_basis(capacity_basis),
        )
        return placement_payload(result)

    @app.get("/orders/{order_id}/overlap")
    async def order_overlap(
        order_id: str,
        request: Request,
        line_id: str = Query(...),
        start_date: str = Query(...),
        ramp_up_plan_id: Optional[str] = None,
    ):
        report = planner(request).detect_overlap(
            order_id, line_id, parse_date(start_date), ramp_up_plan_id=ramp_up_plan_id
        )
        return overlap_payload(report)

    @app.post("/orders/{order_id}/split")
    async def split_order(order_id: str, request: Request, quantity: int = Form(...)):
        result = planner(request).split_order(order_id, quantity)
        return {
            "original": order_payload(result.original),
            "fragment": order_payload(result.fragment),
            "family": {
                "base_po_number": result.family.base_po_number,
                "original_quantity": result.family.original_quantity,
            },
        }

    @app.post("/orders/{order_id}/merge")
    async def merge_order(
        order_id: str, request: Request, into_order_id: Optional[str] = Form(None)
    ):
        return order_payload(planner(request).merge_fragment(order_id, into_order_id or None))

    @app.post("/orders/{order_id}/quantity")
    async def change_quantity(order_id: str, request: Request, quantity: int = Form(...)):
        return order_payload(planner(request).change_order_quantity(order_id, quantity))

    @app.post("/orders/{order_id}/output")
    async def record_output(
        order_id: str,
        request: Request,
        day: str = Form(...),
        quantity: int = Form(...),
    ):
        return order_payload(planner(request).record_output(order_id, parse_date(day), quantity))

    @app.post("/orders/{order_id}/cut-issue")
    async def record_cut_issue(
        order_id: str,
        request: Request,
        cut_quantity: Optional[int] = Form(None),
        issue_quantity: Optional[int] = Form(None),
    ):
        order = planner(request).record_cut_issue(
            order_id, cut_quantity=cut_quantity, issue_quantity=issue_quantity
        )
        return order_payload(order)

    @app.get("/orders/{order_id}/family")
    async def order_family(order_id: str, request: Request):
        return family_payload(planner(request).split_ancestry(order_id))

    @app.get("/splits/{base_po_number}")
    async def split_family(base_po_number: str, request: Request):
        return family_payload(planner(request).split_family(base_po_number))

    # ------------------------------------------------------------------
    # Purchases
    # ------------------------------------------------------------------
    @app.get("/purchases")
    async def list_purchases(request: Request):
        purchases = sorted(planner(request).purchases.list(), key=lambda purchase: purchase.order_date)
        return [purchase_payload(purchase) for purchase in purchases]

    @app.post("/purchases", status_code=201)
    async def create_purchase(
        request: Request,
        po_number: str = Form(...),
        supplier: str = Form(...),
        total_quantity: int = Form(...),
        order_date: str = Form(...),
        delivery_date: Optional[str] = Form(None),
    ):
        purchase = planner(request).register_purchase(
            po_number,
            supplier,
            total_quantity,
            parse_date(order_date),
            delivery_date=parse_optional_date(delivery_date),
        )
        return purchase_payload(purchase)

    @app.post("/purchases/{purchase_id}/order", status_code=201)
    async def order_from_purchase(
        purchase_id: str,
        request: Request,
        style_id: str = Form(...),
        smv: float = Form(0.0),
        mo_count: int = Form(0),
    ):
        order = planner(request).create_order_from_purchase(
            purchase_id, style_id, smv=smv, mo_count=mo_count
        )
        return order_payload(order)

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------
    @app.get("/reports/utilization")
    async def utilization_report(
        request: Request,
        start: Optional[str] = None,
        end: Optional[str] = None,
        line_id: Optional[List[str]] = Query(None),
    ):
        start_day = parse_optional_date(start) or date.today()
        end_day = parse_optional_date(end) or start_day + timedelta(days=29)
        report = planner(request).utilization_report(start_day, end_day, line_ids=line_id)
        return [utilization_payload(line) for line in report]

    @app.get("/reports/orders")
    async def order_status_report(request: Request):
        service = planner(request)
        return {
            status.value: len(service.orders_by_status(status)) for status in OrderStatus
        }

    return app


def split_csv(values: str) -> List[str]:
    return [value.strip() for value in values.split(",") if value.strip()]


def parse_date(value: str) -> date:
    try:
        return datetime.strptime(value.strip(), "%Y-%m-%d").date()
    except ValueError:
        raise ValueError(f"Expected a date as YYYY-MM-DD, got {value!r}") from None


def parse_optional_date(value: Optional[str]) -> Optional[date]:
    return parse_date(value) if value else None


def parse_ramp_points(definitions: str) -> List[Tuple[int, float]]:
    """Parse ``"0:50,1:70,2:85"`` into (day, efficiency) pairs."""

    points: List[Tuple[int, float]] = []
    for chunk in split_csv(definitions):
        day_text, _, efficiency_text = chunk.partition(":")
        try:
            points.append((int(day_text), float(efficiency_text)))
        except ValueError:
            raise ValueError(f"Invalid ramp-up point {chunk!r}; use day:efficiency") from None
    return points


def parse_capacity_basis(value: Optional[str]) -> Optional[CapacityBasis]:
    if not value:
        return None
    return CapacityBasis(value)


def options_payload(options: PlanningOptions) -> Dict[str, Any]:
    return {
        "horizon_days": options.horizon_days,
        "allow_overbooking": options.allow_overbooking,
        "default_ramp_up_plan_id": options.default_ramp_up_plan_id,
        "capacity_basis": options.capacity_basis.value,
    }


def line_payload(line: ProductionLine) -> Dict[str, Any]:
    return {
        "id": line.id,
        "name": line.name,
        "capacity": line.capacity,
        "group_id": line.group_id,
        "status": line.status.value,
        "sort_order": line.sort_order,
        "description": line.description,
    }


def holiday_payload(service: PlannerService, holiday: Holiday) -> Dict[str, Any]:
    return {
        "id": holiday.id,
        "date": holiday.date.isoformat(),
        "name": holiday.name,
        "is_global": holiday.is_global,
        "line_ids": [
            assignment.line_id
            for assignment in service.holiday_assignments.find(holiday_id=holiday.id)
        ],
    }


def ramp_up_payload(plan: RampUpPlan) -> Dict[str, Any]:
    return {
        "id": plan.id,
        "name": plan.name,
        "points": [{"day": point.day, "efficiency": point.efficiency} for point in plan.points],
        "final_efficiency": plan.final_efficiency,
    }


def order_payload(order: Order) -> Dict[str, Any]:
    return {
        "id": order.id,
        "po_number": order.po_number,
        "style_id": order.style_id,
        "order_quantity": order.order_quantity,
        "cut_quantity": order.cut_quantity,
        "issue_quantity": order.issue_quantity,
        "status": order.status.value,
        "line_id": order.assigned_line_id,
        "plan_start_date": order.plan_start_date.isoformat() if order.plan_start_date else None,
        "plan_end_date": order.plan_end_date.isoformat() if order.plan_end_date else None,
        "ramp_up_plan_id": order.placement.ramp_up_plan_id if order.placement else None,
        "capacity_basis": order.placement.capacity_basis.value if order.placement else None,
        "actual_production": {
            day.isoformat(): quantity for day, quantity in sorted(order.actual_production.items())
        },
        "produced_quantity": order.produced_quantity,
        "base_po_number": order.base_po_number,
        "split_number": order.split_number,
        "purchase_id": order.purchase_id,
        "standard_minutes": order.standard_minutes,
    }


def entry_payload(entry: PlannedProduction) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "order_id": entry.order_id,
        "line_id": entry.line_id,
        "planned_date": entry.planned_date.isoformat(),
        "planned_quantity": entry.planned_quantity,
        "actual_quantity": entry.actual_quantity,
        "status": entry.status.value,
        "order_index": entry.order_index,
        "ramp_day": entry.ramp_day,
    }


def placement_payload(result: PlacementResult) -> Dict[str, Any]:
    return {
        "order": order_payload(result.order),
        "plan": {day.isoformat(): quantity for day, quantity in sorted(result.daily_plan.items())},
        "replaced_orders": [
            order_payload(order) for order in result.changes.orders if order.id != result.order.id
        ],
    }


def overlap_payload(report: OverlapReport) -> Dict[str, Any]:
    return {
        "order_id": report.order_id,
        "line_id": report.line_id,
        "start_date": report.start_date.isoformat(),
        "overlaps": report.overlaps,
        "shortfalls": {day.isoformat(): value for day, value in sorted(report.shortfalls.items())},
        "conflicting_order_ids": report.conflicting_order_ids,
    }


def family_payload(family: SplitFamilyView) -> Dict[str, Any]:
    return {
        "base_po_number": family.base_po_number,
        "original_quantity": family.original_quantity,
        "total_quantity": family.total_quantity,
        "members": [order_payload(order) for order in family.members],
    }


def purchase_payload(purchase: Purchase) -> Dict[str, Any]:
    return {
        "id": purchase.id,
        "po_number": purchase.po_number,
        "supplier": purchase.supplier,
        "total_quantity": purchase.total_quantity,
        "order_date": purchase.order_date.isoformat(),
        "delivery_date": purchase.delivery_date.isoformat() if purchase.delivery_date else None,
        "status": purchase.status.value,
    }


def utilization_payload(line: LineUtilization) -> Dict[str, Any]:
    return {
        "line_id": line.line_id,
        "line_name": line.line_name,
        "capacity": line.capacity,
        "peak_utilization": line.peak_utilization,
        "average_utilization": line.average_utilization,
        "overbooked_days": [day.isoformat() for day in line.overbooked_days],
        "cells": [
            {
                "date": cell.day.isoformat(),
                "committed": cell.committed,
                "available": cell.available,
                "utilization": cell.utilization,
                "is_holiday": cell.is_holiday,
                "order_ids": list(cell.order_ids),
            }
            for cell in line.cells
        ],
    }


def ensure_demo_data(service: PlannerService) -> None:
    if len(service.lines) > 0:
        return

    knits = service.create_line_group("Knit floor", sort_order=0)
    wovens = service.create_line_group("Woven floor", sort_order=1)
    line_a = service.register_line("Line A", 600, group_id=knits.id)
    service.register_line("Line B", 450, group_id=knits.id)
    service.register_line("Line C", 500, group_id=wovens.id)

    today = date.today()
    service.add_holiday(today + timedelta(days=7), "Factory maintenance day")
    service.add_holiday(
        today + timedelta(days=3),
        "Line A machine overhaul",
        is_global=False,
        line_ids=[line_a.id],
    )
    service.create_ramp_up_plan(
        "New style ramp-up",
        [(0, 50.0), (1, 70.0), (2, 85.0)],
        final_efficiency=95.0,
    )

    purchase = service.register_purchase(
        "PO-24-0311", "Northwind Apparel", 2400, today - timedelta(days=14)
    )
    service.create_order_from_purchase(purchase.id, "TEE-CREW-01", smv=8.5, mo_count=32)
    service.create_order("PO-24-0312", "POLO-PK-02", 1800, smv=14.2, mo_count=36)
    service.create_order("PO-24-0313", "HOOD-FL-05", 900, smv=22.0, mo_count=40)


__all__ = ["create_app", "ensure_demo_data"]
