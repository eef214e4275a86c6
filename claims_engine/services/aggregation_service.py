"""
Aggregation Service for the claims ratio report.

Rolls reconciled lines up into:
- Monthly status totals (headcount, claims cost, billed revenue, IS)
- The same totals sliced by organization, plan, age bracket or renewal
  month, with each slice's share of the unfiltered monthly status total

Invariants the aggregates keep:
- active + inactive + unmatched == total, for counts and money, every month
- Summing any dimension's slices for a (month, status) gives the monthly
  figure for that status
"""

import logging
from collections import OrderedDict
from typing import Dict, Iterable, List, Optional, Sequence, Union

import pandas as pd

from claims_engine import (
    Dimension,
    ReconciledLine,
    STATUS_KEYS,
    TOTAL_KEY,
)
from claims_engine.services.reconciliation_service import lines_to_frame
from claims_engine.utils.calculations import claims_ratio, safe_ratio, to_native

logger = logging.getLogger(__name__)

ALL_STATUS_KEYS = STATUS_KEYS + [TOTAL_KEY]
STATUS_ORDER = {status: position for position, status in enumerate(ALL_STATUS_KEYS)}

DimensionSpec = Union[Dimension, str, Sequence[Union[Dimension, str]]]


def _money(value) -> float:
    return float(value or 0.0)


def _dimension_keys(dimension: DimensionSpec) -> List[str]:
    """Normalize a dimension (or drill-down tuple of dimensions) to column names."""
    if isinstance(dimension, (Dimension, str)):
        dimension = [dimension]
    keys = [Dimension(d).value for d in dimension]
    if not keys:
        raise ValueError("At least one dimension is required")
    return keys


# =============================================================================
# MONTHLY
# =============================================================================

def _empty_monthly(month: str) -> dict:
    record = {'month': month}
    for status in ALL_STATUS_KEYS:
        record[f"{status}_count"] = 0
        record[f"{status}_value"] = 0.0
        record[f"{status}_net_value"] = 0.0
        record[f"{status}_claims_ratio"] = None
    return record


def _finalize_monthly(record: dict) -> dict:
    """Derive totals and claims ratios from the per-status sums."""
    for measure in ('count', 'value', 'net_value'):
        record[f"{TOTAL_KEY}_{measure}"] = sum(record[f"{status}_{measure}"] for status in STATUS_KEYS)
    for status in ALL_STATUS_KEYS:
        record[f"{status}_value"] = _money(record[f"{status}_value"])
        record[f"{status}_net_value"] = _money(record[f"{status}_net_value"])
        record[f"{status}_claims_ratio"] = claims_ratio(
            record[f"{status}_value"], record[f"{status}_net_value"]
        )
    return record


def aggregate_monthly(lines: List[ReconciledLine], months: Optional[Iterable[str]] = None) -> List[dict]:
    """
    Monthly status totals.

    Counts are distinct persons. Revenue is each person's billed figure,
    counted once per month in which the person has claims.

    Args:
        lines: Reconciled lines
        months: Months to report even when they have no claims (zero-filled)

    Returns:
        One record per month, sorted by month, with {status}_count,
        {status}_value, {status}_net_value and {status}_claims_ratio for
        active, inactive, unmatched and total
    """
    frame = lines_to_frame(lines)
    month_keys = set(months or [])

    sums: Dict[tuple, dict] = {}
    if not frame.empty:
        grouped = frame.groupby(['month', 'status']).agg(
            count=('cpf', 'nunique'),
            value=('claim_total', 'sum'),
            net_value=('revenue', 'sum'),
        )
        sums = grouped.to_dict('index')
        month_keys |= set(frame['month'])

    result = []
    for month in sorted(month_keys):
        record = _empty_monthly(month)
        for status in STATUS_KEYS:
            group = sums.get((month, status))
            if group is None:
                continue
            record[f"{status}_count"] = int(group['count'])
            record[f"{status}_value"] = float(group['value'])
            record[f"{status}_net_value"] = float(group['net_value'])
        result.append(_finalize_monthly(record))

    return result


def merge_monthly_aggregates(parts: Iterable[List[dict]]) -> List[dict]:
    """
    Combine partial monthly aggregates computed over disjoint sets of lines.

    Shards must not share a (month, person) pair; month shards and CPF
    shards both satisfy that. The merge is order-independent.
    """
    merged: Dict[str, dict] = {}
    for part in parts:
        for record in part:
            month = record['month']
            target = merged.setdefault(month, _empty_monthly(month))
            for status in STATUS_KEYS:
                target[f"{status}_count"] += int(record.get(f"{status}_count", 0))
                target[f"{status}_value"] += float(record.get(f"{status}_value", 0.0))
                target[f"{status}_net_value"] += float(record.get(f"{status}_net_value", 0.0))

    return [_finalize_monthly(merged[month]) for month in sorted(merged)]


def consolidate(monthly: List[dict]) -> dict:
    """
    Sum monthly records over the whole period ("consolidado").

    Counts become person-months: a person with claims in three months
    counts three times.
    """
    record = _empty_monthly(None)
    del record['month']
    record['months'] = [m['month'] for m in monthly]
    for month_record in monthly:
        for status in STATUS_KEYS:
            record[f"{status}_count"] += int(month_record[f"{status}_count"])
            record[f"{status}_value"] += float(month_record[f"{status}_value"])
            record[f"{status}_net_value"] += float(month_record[f"{status}_net_value"])
    return _finalize_monthly(record)


def aggregate_by_status(monthly: List[dict]) -> List[dict]:
    """
    Period-wide summary per status with its share of the total.

    Returns:
        One row per status (active, inactive, unmatched, total) with count,
        value, net_value, claims_ratio, pct_count and pct_value
    """
    summary = consolidate(monthly)
    rows = []
    for status in ALL_STATUS_KEYS:
        count = summary[f"{status}_count"]
        value = summary[f"{status}_value"]
        rows.append({
            'status': status,
            'count': count,
            'value': value,
            'net_value': summary[f"{status}_net_value"],
            'claims_ratio': summary[f"{status}_claims_ratio"],
            'pct_count': safe_ratio(count, summary[f"{TOTAL_KEY}_count"]),
            'pct_value': safe_ratio(value, summary[f"{TOTAL_KEY}_value"]),
        })
    return rows


# =============================================================================
# DIMENSIONAL
# =============================================================================

def aggregate_by(
    lines: List[ReconciledLine],
    dimension: DimensionSpec,
    parent: Optional[List[dict]] = None,
) -> List[dict]:
    """
    Slice the monthly status totals by one dimension or a drill-down path.

    Args:
        lines: Reconciled lines (possibly filtered)
        dimension: Dimension, its string value, or a tuple of them for a
            hierarchy such as (ORGANIZATION, RENEWAL_MONTH, PLAN)
        parent: Monthly aggregate the shares are computed against. Defaults
            to aggregate_monthly(lines); pass the unfiltered monthly
            aggregate so filtered slices keep their share of the whole.

    Returns:
        Rows sorted by month, dimension value(s) and status, each with
        month, status, the dimension key(s), count, value, net_value,
        claims_ratio, pct_count and pct_value. Statuses without claims in a
        slice are omitted; the 'total' row is always present.
    """
    keys = _dimension_keys(dimension)
    if parent is None:
        parent = aggregate_monthly(lines)
    parent_by_month = {record['month']: record for record in parent}

    frame = lines_to_frame(lines)
    if frame.empty:
        return []

    slice_cols = ['month'] + keys
    aggregations = dict(
        count=('cpf', 'nunique'),
        value=('claim_total', 'sum'),
        net_value=('revenue', 'sum'),
    )
    by_status = frame.groupby(slice_cols + ['status'], dropna=False).agg(**aggregations).reset_index()
    totals = frame.groupby(slice_cols, dropna=False).agg(**aggregations).reset_index()
    totals['status'] = TOTAL_KEY

    combined = pd.concat([by_status, totals], ignore_index=True)
    combined['_order'] = combined['status'].map(STATUS_ORDER)
    combined = combined.sort_values(slice_cols + ['_order'], kind='mergesort')

    rows = []
    for group in combined.to_dict('records'):
        month = group['month']
        status = group['status']
        parent_record = parent_by_month.get(month, {})
        count = int(group['count'])
        value = _money(group['value'])
        net_value = _money(group['net_value'])

        row = OrderedDict()
        row['month'] = month
        row['status'] = status
        for key in keys:
            row[key] = to_native(group[key])
        row['count'] = count
        row['value'] = value
        row['net_value'] = net_value
        row['claims_ratio'] = claims_ratio(value, net_value)
        row['pct_count'] = safe_ratio(count, parent_record.get(f"{status}_count", 0))
        row['pct_value'] = safe_ratio(value, parent_record.get(f"{status}_value", 0.0))
        rows.append(dict(row))

    logger.debug(f"AGGREGATE: {len(rows)} row(s) by {' > '.join(keys)}")
    return rows
