"""Holiday lookups for production lines."""

from __future__ import annotations

from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, List, Set

from .domain import Holiday, HolidayLineAssignment


class HolidayCalendar:
    """Answers "does line X produce on day D?" from pre-fetched holiday rows.

    Global holidays stop every line. A non-global holiday only stops the
    lines it has been assigned to; without assignments it has no effect.
    """

    def __init__(
        self,
        holidays: Iterable[Holiday] = (),
        assignments: Iterable[HolidayLineAssignment] = (),
    ) -> None:
        self._global_days: Set[date] = set()
        self._local_by_day: Dict[date, List[str]] = defaultdict(list)
        self._lines_by_holiday: Dict[str, Set[str]] = defaultdict(set)
        for assignment in assignments:
            self._lines_by_holiday[assignment.holiday_id].add(assignment.line_id)
        for holiday in holidays:
            if holiday.is_global:
                self._global_days.add(holiday.date)
            else:
                self._local_by_day[holiday.date].append(holiday.id)

    def is_holiday(self, line_id: str, day: date) -> bool:
        if day in self._global_days:
            return True
        for holiday_id in self._local_by_day.get(day, ()):
            if line_id in self._lines_by_holiday.get(holiday_id, ()):
                return True
        return False

    def is_global_holiday(self, day: date) -> bool:
        return day in self._global_days

    def holiday_days(self, line_id: str, days: Iterable[date]) -> List[date]:
        return [day for day in days if self.is_holiday(line_id, day)]


__all__ = ["HolidayCalendar"]
