"""
Report Service for the claims ratio report.

Builds the full sinistralidade report from the two feeds:
1. Validate the period, dimensions and feed shape (nothing is computed on bad input)
2. Scope the feeds to the base scope (operator and plan exclusions)
3. Reconcile once, optionally in parallel month shards
4. Narrow the reconciled lines to the user filters
5. Aggregate monthly, consolidated, per status and per dimension
6. Check the cross-level invariants and record any drift as warnings

Monthly totals of the base pass are the parent of every slice share, so a
filtered report takes its shares against the unfiltered month.
"""

import time
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed, TimeoutError as FuturesTimeoutError
from dataclasses import replace
from typing import Dict, List, Optional, Sequence, Tuple

import pandas as pd

from claims_engine import (
    DEFAULT_DIMENSIONS,
    Dimension,
    FeedFilters,
    ReconciledLine,
    ReportTimeoutError,
    ReportValidationError,
    STATUS_KEYS,
    TOTAL_KEY,
)
from claims_engine.services.aggregation_service import (
    aggregate_by,
    aggregate_by_status,
    aggregate_monthly,
    consolidate,
    merge_monthly_aggregates,
)
from claims_engine.services.eligibility_service import EligibilityIndex
from claims_engine.services.reconciliation_service import (
    apply_feed_filters,
    filter_lines,
    in_filter_scope,
    person_revenue,
    prefilter_claims,
    reconcile,
)
from claims_engine.utils.calculations import within_tolerance
from claims_engine.utils.periods import ReportPeriod, coerce_period
from claims_schema import (
    CLAIMS_REQUIRED_COLUMNS,
    COL_MONTH,
    ENROLLMENT_REQUIRED_COLUMNS,
    normalize_claims_df,
    normalize_enrollment_df,
    validate_feed_columns,
)
from config import ReportConfig

logger = logging.getLogger(__name__)

# Report section holding each dimension's rows
SECTION_BY_DIMENSION = {
    Dimension.ORGANIZATION: 'by_organization',
    Dimension.PLAN: 'by_plan',
    Dimension.AGE_BRACKET: 'by_age_bracket',
    Dimension.RENEWAL_MONTH: 'by_renewal_month',
}

# Float slack for shares compared against 1
SHARE_TOLERANCE = 1e-9


class ReportService:
    """
    Service that turns enrollment and claims feeds into the structured report.

    Stateless between calls: every build recomputes from the feeds it is given.
    """

    def __init__(self, config: Optional[ReportConfig] = None):
        """
        Initialize the report service.

        Args:
            config: Report configuration (defaults to ReportConfig())

        Raises:
            ReportValidationError: if the configuration is invalid
        """
        self.config = config or ReportConfig()
        is_valid, error = self.config.validate()
        if not is_valid:
            raise ReportValidationError("config", error)

    def build_report(
        self,
        enrollments_df: pd.DataFrame,
        claims_df: pd.DataFrame,
        period,
        filters: Optional[FeedFilters] = None,
        dimensions: Sequence = DEFAULT_DIMENSIONS,
        revenue_df: Optional[pd.DataFrame] = None,
    ) -> dict:
        """
        Build the claims ratio report for a period.

        Args:
            enrollments_df: Enrollment feed (reg_beneficiarios shape)
            claims_df: Claims feed (reg_procedimentos shape)
            period: ReportPeriod, list of 'YYYY-MM' months or comma-separated string
            filters: Optional feed filters; operator and plan exclusions
                default to the configured ones
            dimensions: Dimensions to slice by
            revenue_df: Optional revenue feed (reg_faturamento shape)

        Returns:
            Report dict with period, filters, by_month, consolidated,
            by_status, by_<dimension>, active_lives and warnings

        Raises:
            ReportValidationError: on invalid period, dimensions or feed columns
            ReportTimeoutError: when the build exceeds the configured deadline
        """
        started = time.time()

        report_period = coerce_period(period)
        selected = _coerce_dimensions(dimensions)
        _validate_feeds(enrollments_df, claims_df)

        effective = self._effective_filters(filters)
        base = FeedFilters(
            operators=list(effective.operators),
            plan_exclude_patterns=list(effective.plan_exclude_patterns),
        )
        is_narrowed = effective.narrows_lines

        enrollments, claims = apply_feed_filters(enrollments_df, claims_df, base)
        base_lines, parent_monthly, index = self._reconcile_period(
            enrollments, claims, report_period, revenue_df, started
        )

        if is_narrowed:
            lines = filter_lines(base_lines, effective)
            monthly = aggregate_monthly(lines, report_period.months)
        else:
            lines, monthly = base_lines, parent_monthly

        report = {
            'period': list(report_period.months),
            'filters': effective.to_dict(),
            'by_month': monthly,
            'consolidated': consolidate(monthly),
            'by_status': aggregate_by_status(monthly),
        }
        for dimension in selected:
            report[SECTION_BY_DIMENSION[dimension]] = aggregate_by(lines, dimension, parent=parent_monthly)

        in_scope = (lambda record: in_filter_scope(record, effective)) if is_narrowed else None
        report['active_lives'] = _active_lives(index, monthly, in_scope)

        warnings = check_report_consistency(report, self.config.consistency_tolerance)
        for warning in warnings:
            logger.warning(f"REPORT: Consistency drift: {warning}")
        report['warnings'] = warnings

        elapsed = time.time() - started
        logger.info(
            f"REPORT: Built {len(report_period)} month(s), {len(lines)} line(s) in {elapsed:.2f}s"
        )
        return report

    def _effective_filters(self, filters: Optional[FeedFilters]) -> FeedFilters:
        """Fill operator and plan exclusions from the configuration when not given."""
        filters = filters or FeedFilters()
        return replace(
            filters,
            operators=list(filters.operators) or [self.config.default_operator],
            plan_exclude_patterns=list(filters.plan_exclude_patterns) or list(self.config.plan_exclude_patterns),
        )

    def _reconcile_period(
        self,
        enrollments: pd.DataFrame,
        claims_df: pd.DataFrame,
        period: ReportPeriod,
        revenue_df: Optional[pd.DataFrame],
        started: float,
    ) -> Tuple[List[ReconciledLine], List[dict], EligibilityIndex]:
        """Reconcile and aggregate monthly, sequentially or in month shards."""
        index = EligibilityIndex.from_dataframe(enrollments)
        claims = prefilter_claims(claims_df, period.months)
        revenue_by_cpf = person_revenue(claims, revenue_df)

        if self.config.max_workers > 1 and len(period) > 1 and not claims.empty:
            lines, monthly = self._reconcile_parallel(index, claims, period, revenue_by_cpf, started)
        else:
            lines = reconcile(None, claims, period.months, index=index, revenue_by_cpf=revenue_by_cpf)
            monthly = aggregate_monthly(lines, period.months)
            self._check_deadline(started)

        return lines, monthly, index

    def _reconcile_parallel(
        self,
        index: EligibilityIndex,
        claims: pd.DataFrame,
        period: ReportPeriod,
        revenue_by_cpf: Dict[str, float],
        started: float,
    ) -> Tuple[List[ReconciledLine], List[dict]]:
        """Reconcile one month per task and merge the partial monthly aggregates."""
        remaining = self.config.request_timeout_seconds - (time.time() - started)
        if remaining <= 0:
            raise ReportTimeoutError(self.config.request_timeout_seconds)

        def reconcile_month(month: str):
            month_lines = reconcile(
                None,
                claims[claims[COL_MONTH] == month],
                [month],
                index=index,
                revenue_by_cpf=revenue_by_cpf,
            )
            return month_lines, aggregate_monthly(month_lines, [month])

        logger.info(f"REPORT: Reconciling {len(period)} month(s) with {self.config.max_workers} workers")
        executor = ThreadPoolExecutor(max_workers=self.config.max_workers)
        results = {}
        try:
            futures = {executor.submit(reconcile_month, month): month for month in period.months}
            for future in as_completed(futures, timeout=remaining):
                results[futures[future]] = future.result()
        except FuturesTimeoutError:
            logger.error(f"REPORT: Reconciliation exceeded {self.config.request_timeout_seconds:.0f}s")
            raise ReportTimeoutError(self.config.request_timeout_seconds)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        lines = []
        for month in period.months:
            lines.extend(results[month][0])
        monthly = merge_monthly_aggregates(results[month][1] for month in period.months)
        return lines, monthly

    def _check_deadline(self, started: float):
        if time.time() - started > self.config.request_timeout_seconds:
            logger.error(f"REPORT: Reconciliation exceeded {self.config.request_timeout_seconds:.0f}s")
            raise ReportTimeoutError(self.config.request_timeout_seconds)


def _coerce_dimensions(dimensions) -> List[Dimension]:
    selected = []
    for dimension in dimensions or []:
        try:
            selected.append(Dimension(dimension))
        except ValueError:
            raise ReportValidationError("dimensions", "Unknown dimension", dimension)
    return selected


def _validate_feeds(enrollments_df: pd.DataFrame, claims_df: pd.DataFrame):
    """Reject feeds that are missing required columns (empty feeds are fine)."""
    for name, df, normalize, required in (
        ("enrollments", enrollments_df, normalize_enrollment_df, ENROLLMENT_REQUIRED_COLUMNS),
        ("claims", claims_df, normalize_claims_df, CLAIMS_REQUIRED_COLUMNS),
    ):
        if df is None or df.empty:
            continue
        is_valid, error = validate_feed_columns(normalize(df), required)
        if not is_valid:
            raise ReportValidationError(name, error)


def _active_lives(index: EligibilityIndex, monthly: List[dict], include=None) -> List[dict]:
    """Covered persons per month end, split into those with and without claims."""
    active_counts = {record['month']: record['active_count'] for record in monthly}
    rows = index.active_lives_by_month(active_counts, include=include)
    for row in rows:
        row['active_with_claims'] = active_counts[row['month']]
        row['active_without_claims'] = row['active_lives'] - active_counts[row['month']]
    return rows


def check_report_consistency(report: dict, tolerance: float = 0.01) -> List[str]:
    """
    Verify the report's cross-level invariants.

    Checks, per month:
    - active + inactive + unmatched equals total (count, value, net value)
    - each dimension's slices sum to the monthly figure of every status
    - every share (pct_count, pct_value) is None or a fraction in [0, 1]

    Args:
        report: Report dict from ReportService.build_report()
        tolerance: Allowed absolute drift for money fields

    Returns:
        Human-readable violation messages (empty when consistent)
    """
    violations = []
    monthly_by_month = {record['month']: record for record in report.get('by_month', [])}

    for month, record in monthly_by_month.items():
        parts = sum(record[f"{status}_count"] for status in STATUS_KEYS)
        if parts != record[f"{TOTAL_KEY}_count"]:
            violations.append(
                f"{month}: status counts sum to {parts}, total is {record[f'{TOTAL_KEY}_count']}"
            )
        for measure in ('value', 'net_value'):
            parts = sum(record[f"{status}_{measure}"] for status in STATUS_KEYS)
            if not within_tolerance(record[f"{TOTAL_KEY}_{measure}"], parts, tolerance):
                violations.append(
                    f"{month}: status {measure} sums to {parts:.2f}, total is {record[f'{TOTAL_KEY}_{measure}']:.2f}"
                )

    for section in SECTION_BY_DIMENSION.values():
        rows = report.get(section)
        if rows is None:
            continue
        sums: Dict[tuple, list] = {}
        for row in rows:
            acc = sums.setdefault((row['month'], row['status']), [0, 0.0])
            acc[0] += row['count']
            acc[1] += row['value']

        for month, record in monthly_by_month.items():
            for status in STATUS_KEYS + [TOTAL_KEY]:
                count, value = sums.get((month, status), (0, 0.0))
                if count != record[f"{status}_count"]:
                    violations.append(
                        f"{section} {month} {status}: slices count {count}, month has {record[f'{status}_count']}"
                    )
                if not within_tolerance(record[f"{status}_value"], value, tolerance):
                    violations.append(
                        f"{section} {month} {status}: slices value {value:.2f}, month has {record[f'{status}_value']:.2f}"
                    )

    for section in ['by_status'] + list(SECTION_BY_DIMENSION.values()):
        for row in report.get(section) or []:
            for key in ('pct_count', 'pct_value'):
                share = row.get(key)
                if share is not None and not -SHARE_TOLERANCE <= share <= 1 + SHARE_TOLERANCE:
                    where = " ".join(str(row[k]) for k in ('month', 'status') if k in row)
                    violations.append(f"{section} {where}: {key} {share:.4f} outside [0, 1]")

    return violations
