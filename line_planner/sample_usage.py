"""Demonstration script for the garment line planner."""

from __future__ import annotations

from datetime import date, timedelta

from . import CapacityExceeded, PlannerService
from .config import PlannerSettings, configure_logging


def main() -> None:
    configure_logging(PlannerSettings.from_env())
    planner = PlannerService()

    # Master data
    knits = planner.create_line_group("Knit floor")
    line_a = planner.register_line("Line A", 100, group_id=knits.id)
    line_b = planner.register_line("Line B", 80, group_id=knits.id)

    start = date(2024, 1, 1)
    planner.add_holiday(start + timedelta(days=1), "New Year holiday")
    planner.add_holiday(
        start + timedelta(days=3),
        "Line B needle change",
        is_global=False,
        line_ids=[line_b.id],
    )
    ramp_up = planner.create_ramp_up_plan(
        "New style", [(0, 50.0), (1, 75.0)], final_efficiency=100.0
    )

    purchase = planner.register_purchase("PO-1001", "Northwind Apparel", 300, start)
    tees = planner.create_order_from_purchase(purchase.id, "TEE-CREW-01", smv=8.5)
    polos = planner.create_order("PO-1002", "POLO-PK-02", 250, smv=14.2)

    # Planning
    placed = planner.place_order(polos.id, line_a.id, start)
    print(f"Plan for {placed.order.po_number} on {line_a.name}")
    for day, quantity in sorted(placed.daily_plan.items()):
        print(f" - {day:%a %d.%m}: {quantity} pcs")

    overlap = planner.detect_overlap(tees.id, line_a.id, start)
    if overlap.overlaps:
        print(f"\n{tees.po_number} would collide on {len(overlap.shortfalls)} day(s); splitting")
        split = planner.split_order(tees.id, 120)
        print(
            f" - {split.original.po_number}: {split.original.order_quantity} pcs, "
            f"{split.fragment.po_number}: {split.fragment.order_quantity} pcs"
        )
        planner.place_order(split.fragment.id, line_b.id, start, ramp_up_plan_id=ramp_up.id)
        try:
            planner.place_order(split.original.id, line_a.id, start, horizon_days=3)
        except CapacityExceeded as exc:
            print(f" - {exc.message}")
            planner.place_order(split.original.id, line_a.id, start + timedelta(days=4))

    # Shop floor feedback
    planner.record_output(polos.id, start, 100)

    print("\nUtilisation")
    for line in planner.utilization_report(start, start + timedelta(days=6)):
        busy = ", ".join(
            f"{cell.day:%d.%m} {cell.utilization:.0f}%"
            for cell in line.cells
            if cell.committed
        )
        print(f" - {line.line_name}: peak {line.peak_utilization:.0f}% ({busy})")

    family = planner.split_ancestry(tees.id)
    print(
        f"\nSplit family {family.base_po_number}: "
        f"{family.total_quantity}/{family.original_quantity} pcs in {len(family.members)} orders"
    )
    print(f"Purchase {purchase.po_number} is {planner.purchases.get(purchase.id).status.value}")


if __name__ == "__main__":
    main()
