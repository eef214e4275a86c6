"""
Utility functions for the claims ratio engine.
"""

from .calculations import (
    safe_ratio,
    claims_ratio,
    to_native,
    within_tolerance,
)

from .formatting import (
    format_currency,
    format_percentage,
    format_count,
    status_label,
)

from .periods import (
    ReportPeriod,
    parse_month,
    month_bounds,
    month_end,
    months_between,
    shift_month,
    trailing_months,
    coerce_period,
)

__all__ = [
    'safe_ratio',
    'claims_ratio',
    'to_native',
    'within_tolerance',
    'format_currency',
    'format_percentage',
    'format_count',
    'status_label',
    'ReportPeriod',
    'parse_month',
    'month_bounds',
    'month_end',
    'months_between',
    'shift_month',
    'trailing_months',
    'coerce_period',
]
