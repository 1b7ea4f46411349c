from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List


# Monday, as in date.weekday().
WEEK_START = 0


@dataclass(frozen=True)
class DateRange:
    start: date
    end: date

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    def to_dict(self) -> Dict[str, str]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


PERIOD_OPTIONS: List[Dict[str, str]] = [
    {"key": "today", "label": "Hoje"},
    {"key": "current_week", "label": "Semana atual"},
    {"key": "previous_week", "label": "Semana anterior"},
    {"key": "current_month", "label": "Mes atual"},
    {"key": "previous_month", "label": "Mes anterior"},
    {"key": "current_quarter", "label": "Trimestre atual"},
    {"key": "previous_quarter", "label": "Trimestre anterior"},
    {"key": "current_semester", "label": "Semestre atual"},
    {"key": "previous_semester", "label": "Semestre anterior"},
    {"key": "current_year", "label": "Ano atual"},
    {"key": "previous_year", "label": "Ano anterior"},
]

_PERIOD_ALIASES = {
    "hoje": "today",
    "semana_atual": "current_week",
    "semana_anterior": "previous_week",
    "mes_atual": "current_month",
    "mes_anterior": "previous_month",
    "trimestre_atual": "current_quarter",
    "trimestre_anterior": "previous_quarter",
    "semestre_atual": "current_semester",
    "semestre_anterior": "previous_semester",
    "ano_atual": "current_year",
    "ano_anterior": "previous_year",
}


def period_options() -> List[Dict[str, str]]:
    return [dict(item) for item in PERIOD_OPTIONS]


def normalize_period_token(raw_value: Any) -> str:
    if not isinstance(raw_value, str):
        return ""
    normalized = raw_value.strip().lower()
    if not normalized:
        return ""
    if normalized in _RESOLVERS:
        return normalized
    return _PERIOD_ALIASES.get(normalized, "")


def resolve_period(token: Any, now: date | datetime) -> DateRange | None:
    """Turn a relative period token into an inclusive calendar range.

    Returns None for empty or unknown tokens so callers fall back to the
    explicit start/end dates.
    """
    key = normalize_period_token(token)
    if not key:
        return None
    today = _as_date(now)
    if today is None:
        return None
    return _RESOLVERS[key](today)


def _as_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return None


def start_of_week(day: date) -> date:
    return day - timedelta(days=(day.weekday() - WEEK_START) % 7)


def _month_end(year: int, month: int) -> date:
    if month == 12:
        return date(year, 12, 31)
    return date(year, month + 1, 1) - timedelta(days=1)


def _shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def _month_range(year: int, month: int) -> DateRange:
    return DateRange(date(year, month, 1), _month_end(year, month))


def _quarter_range(year: int, quarter: int) -> DateRange:
    first_month = (quarter - 1) * 3 + 1
    return DateRange(date(year, first_month, 1), _month_end(year, first_month + 2))


def _semester_range(year: int, semester: int) -> DateRange:
    if semester == 1:
        return DateRange(date(year, 1, 1), date(year, 6, 30))
    return DateRange(date(year, 7, 1), date(year, 12, 31))


def _today(day: date) -> DateRange:
    return DateRange(day, day)


def _current_week(day: date) -> DateRange:
    start = start_of_week(day)
    return DateRange(start, start + timedelta(days=6))


def _previous_week(day: date) -> DateRange:
    return _current_week(day - timedelta(days=7))


def _current_month(day: date) -> DateRange:
    return _month_range(day.year, day.month)


def _previous_month(day: date) -> DateRange:
    return _month_range(*_shift_month(day.year, day.month, -1))


def _current_quarter(day: date) -> DateRange:
    return _quarter_range(day.year, (day.month - 1) // 3 + 1)


def _previous_quarter(day: date) -> DateRange:
    quarter = (day.month - 1) // 3 + 1
    if quarter == 1:
        return _quarter_range(day.year - 1, 4)
    return _quarter_range(day.year, quarter - 1)


def _current_semester(day: date) -> DateRange:
    return _semester_range(day.year, 1 if day.month <= 6 else 2)


def _previous_semester(day: date) -> DateRange:
    if day.month <= 6:
        return _semester_range(day.year - 1, 2)
    return _semester_range(day.year, 1)


def _current_year(day: date) -> DateRange:
    return DateRange(date(day.year, 1, 1), date(day.year, 12, 31))


def _previous_year(day: date) -> DateRange:
    return DateRange(date(day.year - 1, 1, 1), date(day.year - 1, 12, 31))


_RESOLVERS: Dict[str, Callable[[date], DateRange]] = {
    "today": _today,
    "current_week": _current_week,
    "previous_week": _previous_week,
    "current_month": _current_month,
    "previous_month": _previous_month,
    "current_quarter": _current_quarter,
    "previous_quarter": _previous_quarter,
    "current_semester": _current_semester,
    "previous_semester": _previous_semester,
    "current_year": _current_year,
    "previous_year": _previous_year,
}
