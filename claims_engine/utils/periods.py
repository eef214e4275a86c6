"""
Reference period helpers.

Months travel through the engine as 'YYYY-MM' strings (the competence month
format of the claims feed). These helpers validate them and turn them into
the date bounds the eligibility rules need.
"""

import calendar
from dataclasses import dataclass
from datetime import date
from typing import List, Tuple

from claims_engine import ReportValidationError
from claims_schema import MIN_YEAR, MONTH_PATTERN, to_date


def parse_month(value: str, field_name: str = "month") -> Tuple[int, int]:
    """
    Parse a 'YYYY-MM' string.

    Args:
        value: Month string, e.g. '2025-03'
        field_name: Name reported in the validation error

    Returns:
        (year, month) tuple

    Raises:
        ReportValidationError: on anything that is not a real calendar month
    """
    if value is None or not str(value).strip():
        raise ReportValidationError(field_name, "Month is required (format YYYY-MM)", value)

    match = MONTH_PATTERN.match(str(value).strip())
    if not match:
        raise ReportValidationError(field_name, "Invalid month format, expected YYYY-MM", value)

    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise ReportValidationError(field_name, "Month must be between 01 and 12", value)
    if year < MIN_YEAR:
        raise ReportValidationError(field_name, "Year is out of range", value)
    return year, month


def format_month(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


def month_bounds(value: str) -> Tuple[date, date]:
    """First and last calendar day of a 'YYYY-MM' month."""
    year, month = parse_month(value)
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def month_end(value: str) -> date:
    """Last day of the month; eligibility for a month is resolved as of this date."""
    return month_bounds(value)[1]


def shift_month(value: str, offset: int) -> str:
    """Move a 'YYYY-MM' month by `offset` months (negative goes back)."""
    year, month = parse_month(value)
    index = year * 12 + (month - 1) + offset
    return format_month(index // 12, index % 12 + 1)


def months_between(start: str, end: str) -> List[str]:
    """Inclusive list of months from `start` to `end`; empty when start > end."""
    parse_month(start, "start")
    parse_month(end, "end")
    months = []
    current = start
    while current <= end:
        months.append(current)
        current = shift_month(current, 1)
    return months


def trailing_months(reference: str, count: int) -> List[str]:
    """
    The `count` months ending at `reference`, oldest first.

    trailing_months('2025-03', 3) -> ['2025-01', '2025-02', '2025-03']
    """
    if count < 1:
        raise ReportValidationError("count", "Window must contain at least one month", count)
    return [shift_month(reference, -offset) for offset in range(count - 1, -1, -1)]


@dataclass(frozen=True)
class ReportPeriod:
    """
    Validated, sorted, de-duplicated set of reference months.

    Build one with from_months() (explicit list, as the cards endpoints take)
    or from_range() (start/end dates, as the dashboard takes).
    """
    months: Tuple[str, ...]

    @classmethod
    def from_months(cls, months) -> "ReportPeriod":
        if isinstance(months, str):
            months = [m for m in months.split(',')]
        cleaned = [str(m).strip() for m in (months or []) if m is not None and str(m).strip()]
        if not cleaned:
            raise ReportValidationError("months", "At least one reference month is required (format YYYY-MM)")
        for month in cleaned:
            parse_month(month, "months")
        return cls(months=tuple(sorted(set(cleaned))))

    @classmethod
    def from_range(cls, start, end) -> "ReportPeriod":
        start_date = _require_date(start, "start_date")
        end_date = _require_date(end, "end_date")
        if start_date > end_date:
            raise ReportValidationError("start_date", "Start date is after end date", start)
        months = months_between(
            format_month(start_date.year, start_date.month),
            format_month(end_date.year, end_date.month),
        )
        return cls(months=tuple(months))

    @property
    def first_day(self) -> date:
        return month_bounds(self.months[0])[0]

    @property
    def last_day(self) -> date:
        return month_bounds(self.months[-1])[1]

    def __contains__(self, month: str) -> bool:
        return month in self.months

    def __iter__(self):
        return iter(self.months)

    def __len__(self) -> int:
        return len(self.months)


def _require_date(value, field_name: str) -> date:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ReportValidationError(field_name, "Date is required (format YYYY-MM-DD)", value)
    parsed = to_date(value)
    if parsed is None:
        raise ReportValidationError(field_name, "Invalid date", value)
    return parsed


def coerce_period(period) -> ReportPeriod:
    """Accept a ReportPeriod, a list of months or a comma-separated string."""
    if isinstance(period, ReportPeriod):
        return period
    return ReportPeriod.from_months(period)

