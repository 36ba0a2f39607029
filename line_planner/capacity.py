"""Per-cell capacity accounting for production lines."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from .domain import PlannedProduction, ProductionLine
from .holiday_calendar import HolidayCalendar
from .rampup import FULL_EFFICIENCY, effective_capacity

Cell = Tuple[str, date]


@dataclass(slots=True)
class CellLoad:
    """Snapshot of one (line, day) cell used by reports."""

    line_id: str
    day: date
    capacity: int
    committed: int
    available: int
    utilization: float
    is_holiday: bool
    order_ids: Tuple[str, ...] = tuple()


class CapacityAccountant:
    """Computes committed, available and utilised capacity per cell.

    The accountant works on pre-fetched plan entries and never touches a
    repository. ``commit`` and ``release`` adjust its private index so a
    caller can allocate several orders against one scratch copy.
    """

    def __init__(
        self,
        lines: Mapping[str, ProductionLine],
        calendar: HolidayCalendar,
        entries: Iterable[PlannedProduction] = (),
    ) -> None:
        self._lines = dict(lines)
        self._calendar = calendar
        self._cells: Dict[Cell, List[PlannedProduction]] = defaultdict(list)
        self.commit(entries)

    @property
    def calendar(self) -> HolidayCalendar:
        return self._calendar

    def copy(self, *, exclude_order_ids: Iterable[str] = ()) -> "CapacityAccountant":
        excluded = set(exclude_order_ids)
        return CapacityAccountant(
            self._lines,
            self._calendar,
            (entry for entry in self.entries() if entry.order_id not in excluded),
        )

    def commit(self, entries: Iterable[PlannedProduction]) -> None:
        for entry in entries:
            self._cells[(entry.line_id, entry.planned_date)].append(entry)

    def release(self, order_id: str) -> None:
        for cell, cell_entries in list(self._cells.items()):
            kept = [entry for entry in cell_entries if entry.order_id != order_id]
            if kept:
                self._cells[cell] = kept
            else:
                del self._cells[cell]

    def entries(self) -> List[PlannedProduction]:
        return [entry for cell_entries in self._cells.values() for entry in cell_entries]

    def cell_entries(self, line_id: str, day: date) -> List[PlannedProduction]:
        entries = self._cells.get((line_id, day), [])
        return sorted(entries, key=lambda entry: entry.order_index)

    def next_order_index(self, line_id: str, day: date) -> int:
        entries = self._cells.get((line_id, day))
        if not entries:
            return 0
        return max(entry.order_index for entry in entries) + 1

    def is_holiday(self, line_id: str, day: date) -> bool:
        return self._calendar.is_holiday(line_id, day)

    def committed_load(self, line_id: str, day: date) -> int:
        return sum(entry.planned_quantity for entry in self._cells.get((line_id, day), ()))

    def effective_capacity(self, line_id: str, efficiency: float = FULL_EFFICIENCY) -> int:
        return effective_capacity(self._lines[line_id].capacity, efficiency)

    def available_capacity(
        self, line_id: str, day: date, efficiency: float = FULL_EFFICIENCY
    ) -> int:
        if self.is_holiday(line_id, day):
            return 0
        free = self.effective_capacity(line_id, efficiency) - self.committed_load(line_id, day)
        return max(free, 0)

    def utilization(self, line_id: str, day: date) -> float:
        """Committed load as a percentage of nominal capacity, uncapped."""

        if self.is_holiday(line_id, day):
            return 0.0
        capacity = self._lines[line_id].capacity
        return self.committed_load(line_id, day) / capacity * 100

    def is_overbooked(self, line_id: str, day: date) -> bool:
        return self.utilization(line_id, day) > 100

    def cell_load(self, line_id: str, day: date) -> CellLoad:
        line = self._lines[line_id]
        entries = self.cell_entries(line_id, day)
        return CellLoad(
            line_id=line_id,
            day=day,
            capacity=line.capacity,
            committed=self.committed_load(line_id, day),
            available=self.available_capacity(line_id, day),
            utilization=self.utilization(line_id, day),
            is_holiday=self.is_holiday(line_id, day),
            order_ids=tuple(dict.fromkeys(entry.order_id for entry in entries)),
        )

    def conflicting_order_ids(
        self, line_id: str, day: date, *, ignore_order_id: Optional[str] = None
    ) -> List[str]:
        return [
            entry.order_id
            for entry in self.cell_entries(line_id, day)
            if entry.order_id != ignore_order_id
        ]


__all__ = ["CapacityAccountant", "CellLoad", "Cell"]
