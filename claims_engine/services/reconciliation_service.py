"""
Reconciliation Service for the claims ratio report.

Turns the two feeds into one ReconciledLine per (month, person) with
billable claims, classified as:
- active: the effective enrollment covers the last day of the month
- inactive: an enrollment had started, but no longer covers the month end
- unmatched: no enrollment under the operator had started by the month end

Every report variant (monthly totals, by organization, by plan, by age
bracket, by renewal month) is an aggregation over these lines, so there is
exactly one classification pass per report.
"""

import logging
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple

import pandas as pd

from claims_engine import (
    ClaimRecord,
    ClaimStatus,
    EnrollmentRecord,
    FeedFilters,
    ReconciledLine,
    ReportValidationError,
)
from claims_engine.services.eligibility_service import EligibilityIndex
from claims_engine.utils.periods import month_end
from claims_schema import (
    CLAIMS_REQUIRED_COLUMNS,
    COL_AMOUNT,
    COL_CPF,
    COL_EVENT,
    COL_MONTH,
    COL_OPERATOR,
    COL_PLAN,
    COL_REVENUE,
    normalize_claims_df,
    normalize_columns,
    normalize_cpf,
    normalize_enrollment_df,
    validate_feed_columns,
)
from constants import AGE_BRACKETS, ALL_TYPES, NOT_INFORMED

logger = logging.getLogger(__name__)

LINE_COLUMNS = [
    'month', 'cpf', 'status', 'claim_total', 'revenue',
    'organization', 'plan', 'age_bracket', 'renewal_month', 'record_id',
    'beneficiary_type',
]


# =============================================================================
# PRE-FILTERS
# =============================================================================

def claims_to_frame(records: Iterable[ClaimRecord]) -> pd.DataFrame:
    """
    ClaimRecord objects as a claims feed DataFrame.

    Optional columns no record fills are left out: without an event marker
    the rows count as already filtered, and without an operator they pass
    any operator filter, like a feed queried per operator.
    """
    rows = [record.to_dict() for record in records]
    if not rows:
        return pd.DataFrame(columns=CLAIMS_REQUIRED_COLUMNS)
    df = pd.DataFrame(rows)
    empty = [col for col in (COL_REVENUE, COL_EVENT, COL_OPERATOR) if df[col].isna().all()]
    return df.drop(columns=empty)


def prefilter_claims(claims_df, months: Optional[Iterable[str]] = None) -> pd.DataFrame:
    """
    Keep only billable claim rows inside the requested months.

    A row is billable when it carries an event marker. Feeds without an
    event column are treated as already filtered at the source.

    Args:
        claims_df: Claims feed (raw or normalized DataFrame, or ClaimRecord list)
        months: 'YYYY-MM' months to keep; None keeps every month

    Returns:
        Normalized claims DataFrame

    Raises:
        ReportValidationError: if required claim columns are missing
    """
    if claims_df is not None and not isinstance(claims_df, pd.DataFrame):
        claims_df = claims_to_frame(claims_df)
    df = normalize_claims_df(claims_df)
    if df.empty:
        return pd.DataFrame(columns=CLAIMS_REQUIRED_COLUMNS)

    is_valid, error = validate_feed_columns(df, CLAIMS_REQUIRED_COLUMNS)
    if not is_valid:
        raise ReportValidationError("claims", error)

    keep = df[COL_MONTH].notna() & (df[COL_CPF] != "")
    if COL_EVENT in df.columns:
        events = df[COL_EVENT].map(lambda v: None if pd.isna(v) else str(v).strip())
        keep &= events.notna() & (events != "")
    if months is not None:
        keep &= df[COL_MONTH].isin(list(months))

    dropped = int((~keep).sum())
    if dropped:
        logger.debug(f"RECONCILE: Dropped {dropped} non-billable or out-of-period claim row(s)")

    return df[keep].reset_index(drop=True)


def apply_feed_filters(
    enrollments_df: pd.DataFrame,
    claims_df,
    filters: Optional[FeedFilters] = None,
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Scope both feeds to the base scope before reconciliation.

    The operator filter applies to both feeds and plan exclusions to the
    enrollment feed. Organization, plan, renewal month, type and CPF filters
    are not applied here: they narrow the reconciled lines (see
    filter_lines), so a person is always resolved against the full history
    of the base scope.

    Args:
        enrollments_df: Enrollment feed (raw or normalized)
        claims_df: Claims feed (raw or normalized DataFrame, or ClaimRecord list)
        filters: Filters to apply; None applies nothing

    Returns:
        Tuple of (filtered enrollments, filtered claims), both normalized
    """
    enrollments = normalize_enrollment_df(enrollments_df)
    if claims_df is not None and not isinstance(claims_df, pd.DataFrame):
        claims_df = claims_to_frame(claims_df)
    claims = normalize_claims_df(claims_df)
    if filters is None:
        return enrollments, claims

    if filters.operators:
        wanted = {str(op).strip().upper() for op in filters.operators}
        enrollments = _filter_operator(enrollments, wanted)
        claims = _filter_operator(claims, wanted)

    if filters.plan_exclude_patterns and COL_PLAN in enrollments.columns:
        plans = enrollments[COL_PLAN].fillna("").astype(str).str.upper()
        excluded = pd.Series(False, index=enrollments.index)
        for pattern in filters.plan_exclude_patterns:
            excluded |= plans.str.contains(str(pattern).upper(), regex=False)
        enrollments = enrollments[~excluded]

    logger.info(
        f"RECONCILE: Base scope left {len(enrollments)} enrollment row(s) and {len(claims)} claim row(s)"
    )
    return enrollments.reset_index(drop=True), claims.reset_index(drop=True)


def _filter_operator(df: pd.DataFrame, wanted: set) -> pd.DataFrame:
    if df.empty or COL_OPERATOR not in df.columns:
        # Feeds queried per operator come without the operator column
        return df
    return df[df[COL_OPERATOR].map(lambda v: str(v).strip().upper() if pd.notna(v) else "").isin(wanted)]


def _text(value) -> str:
    return "" if value is None else str(value).strip()


def in_filter_scope(item, filters: Optional[FeedFilters]) -> bool:
    """
    Whether a ReconciledLine (or an EnrollmentRecord) passes the user filters.

    Organization, plan, renewal month and type are read from the record the
    person was resolved to, so narrowing the report never changes which
    record that is. Unmatched lines carry placeholders and fall outside any
    of those filters.
    """
    if filters is None:
        return True
    if filters.cpf and item.cpf != normalize_cpf(filters.cpf):
        return False
    if filters.organizations and _text(item.organization) not in {_text(v) for v in filters.organizations}:
        return False
    if filters.plans and _text(item.plan) not in {_text(v) for v in filters.plans}:
        return False
    if filters.renewal_months and _text(item.renewal_month) not in {_text(v) for v in filters.renewal_months}:
        return False
    if filters.beneficiary_type and filters.beneficiary_type != ALL_TYPES:
        return _text(item.beneficiary_type).upper() == filters.beneficiary_type.strip().upper()
    return True


def filter_lines(lines: List[ReconciledLine], filters: Optional[FeedFilters]) -> List[ReconciledLine]:
    """Reconciled lines inside the organization/plan/renewal month/type/CPF filters."""
    kept = [line for line in lines if in_filter_scope(line, filters)]
    if len(kept) != len(lines):
        logger.info(f"RECONCILE: Filters kept {len(kept)} of {len(lines)} line(s)")
    return kept


# =============================================================================
# CLASSIFICATION
# =============================================================================

def classify_claims(
    month_claims,
    record: Optional[EnrollmentRecord],
    month: str,
) -> ClaimStatus:
    """
    Classify one person's claims for one month.

    The claims themselves only establish that the (month, person) pair is in
    the report; the status depends on the resolved record alone.

    Args:
        month_claims: The person's billable claims in `month` (rows or their total)
        record: Enrollment record resolved as of the month end (or None)
        month: 'YYYY-MM'

    Returns:
        ClaimStatus
    """
    if record is None:
        return ClaimStatus.UNMATCHED
    if record.is_active_at(month_end(month)):
        return ClaimStatus.ACTIVE
    return ClaimStatus.INACTIVE


def person_revenue(claims_df: pd.DataFrame, revenue_df: Optional[pd.DataFrame] = None) -> Dict[str, float]:
    """
    Fixed billed revenue per CPF.

    The billed figure belongs to the person, not to a claim: it is the
    largest non-null value found for the CPF, in the revenue feed when one
    is given, otherwise on the person's claim rows.
    """
    source = claims_df
    if revenue_df is not None:
        source = normalize_columns(revenue_df)
        if not source.empty and COL_CPF in source.columns:
            source = source.assign(**{COL_CPF: source[COL_CPF].map(normalize_cpf)})

    if source is None or source.empty or COL_REVENUE not in source.columns:
        return {}

    values = pd.to_numeric(source[COL_REVENUE], errors='coerce')
    revenue = values.groupby(source[COL_CPF]).max().dropna()
    return {str(cpf): float(value) for cpf, value in revenue.items()}


def reconcile(
    enrollments,
    claims_df: pd.DataFrame,
    months: Optional[Iterable[str]] = None,
    index: Optional[EligibilityIndex] = None,
    revenue_df: Optional[pd.DataFrame] = None,
    revenue_by_cpf: Optional[Dict[str, float]] = None,
) -> List[ReconciledLine]:
    """
    Reconcile claims against enrollment status, one line per (month, person).

    Args:
        enrollments: Enrollment feed DataFrame (ignored when `index` is given)
        claims_df: Claims feed
        months: Months to keep; None keeps every month in the claims feed
        index: Pre-built EligibilityIndex to share across calls
        revenue_df: Optional revenue feed (cpf, revenue)
        revenue_by_cpf: Precomputed person_revenue() result; month shards
            pass the period-wide figures so every shard sees the same revenue

    Returns:
        ReconciledLine list sorted by (month, cpf)
    """
    if index is None:
        index = EligibilityIndex.from_dataframe(enrollments)

    claims = prefilter_claims(claims_df, months)
    if claims.empty:
        return []

    if revenue_by_cpf is None:
        revenue_by_cpf = person_revenue(claims, revenue_df)
    totals = claims.groupby([COL_MONTH, COL_CPF], sort=True)[COL_AMOUNT].sum()

    lines = []
    for (month, cpf), claim_total in totals.items():
        as_of: date = month_end(month)
        record = index.resolve(cpf, as_of)
        status = classify_claims(claim_total, record, month)
        lines.append(_build_line(month, cpf, status, float(claim_total), revenue_by_cpf.get(cpf, 0.0), record))

    logger.debug(f"RECONCILE: {len(lines)} line(s) from {len(claims)} claim row(s)")
    return lines


def _build_line(month, cpf, status, claim_total, revenue, record) -> ReconciledLine:
    if record is None:
        return ReconciledLine(
            month=month,
            cpf=cpf,
            status=status,
            claim_total=claim_total,
            revenue=revenue,
            organization=NOT_INFORMED,
            plan=NOT_INFORMED,
            age_bracket=AGE_BRACKETS[0],
            renewal_month=NOT_INFORMED,
        )
    return ReconciledLine(
        month=month,
        cpf=cpf,
        status=status,
        claim_total=claim_total,
        revenue=revenue,
        organization=record.organization or NOT_INFORMED,
        plan=record.plan or NOT_INFORMED,
        age_bracket=record.age_bracket,
        renewal_month=record.renewal_month or NOT_INFORMED,
        record_id=record.record_id,
        beneficiary_type=record.beneficiary_type,
    )


def lines_to_frame(lines: List[ReconciledLine]) -> pd.DataFrame:
    """ReconciledLine list as a DataFrame (status as its string key)."""
    if not lines:
        return pd.DataFrame(columns=LINE_COLUMNS)
    return pd.DataFrame([line.to_dict() for line in lines], columns=LINE_COLUMNS)
