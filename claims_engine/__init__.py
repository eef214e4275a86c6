"""
Claims Ratio Engine

Status reconciliation and multi-dimensional aggregation behind the
sinistralidade report. Every report variant is one reconciliation pass plus
a choice of dimensions to slice by:

- Eligibility: which enrollment record was effective for a person at a date
- Reconciliation: active / inactive / unmatched per (month, person) with claims
- Aggregation: headcount and money per month, status and dimension
"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Dict, Optional

import pandas as pd

from claims_schema import (
    COL_AGE, COL_BENEFICIARY_TYPE, COL_CPF, COL_EXCLUSION_DATE, COL_OPERATOR,
    COL_ORGANIZATION, COL_PLAN, COL_RECORD_ID, COL_RENEWAL_MONTH,
    COL_START_DATE, COL_STATUS, COL_MONTH, COL_AMOUNT, COL_REVENUE, COL_EVENT,
    get_age_bracket, is_active_label, normalize_cpf, to_date,
    to_optional_int,
)


class EnrollmentStatus(Enum):
    """
    Contractual status of an enrollment record, normalized once at ingestion.

    Any label other than the canonical active ones becomes INACTIVE. That
    folds "cancelled", "suspended" and unreadable labels together, which is
    the behavior the report has always had.
    """
    ACTIVE = "active"
    INACTIVE = "inactive"

    @classmethod
    def from_label(cls, label) -> "EnrollmentStatus":
        if isinstance(label, EnrollmentStatus):
            return label
        return cls.ACTIVE if is_active_label(label) else cls.INACTIVE


class ClaimStatus(Enum):
    """Reconciled status of a person who generated claims in a month."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    UNMATCHED = "unmatched"     # Claims but no enrollment under the operator in scope


# Display/iteration order of the three categories
CLAIM_STATUSES = [ClaimStatus.ACTIVE, ClaimStatus.INACTIVE, ClaimStatus.UNMATCHED]
STATUS_KEYS = [status.value for status in CLAIM_STATUSES]
TOTAL_KEY = "total"


class Dimension(Enum):
    """Grouping dimensions a report can be sliced by."""
    ORGANIZATION = "organization"
    PLAN = "plan"
    AGE_BRACKET = "age_bracket"
    RENEWAL_MONTH = "renewal_month"


DEFAULT_DIMENSIONS = [
    Dimension.ORGANIZATION,
    Dimension.PLAN,
    Dimension.AGE_BRACKET,
    Dimension.RENEWAL_MONTH,
]


# =============================================================================
# ERRORS
# =============================================================================

class ReportValidationError(ValueError):
    """
    Rejected report input (period, month string, date or feed shape).

    Raised before reconciliation starts; nothing is partially computed.
    """

    def __init__(self, field_name: str, message: str, value: Any = None):
        super().__init__(f"{field_name}: {message}")
        self.field = field_name
        self.message = message
        self.value = value

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "error": "validation_error",
            "field": self.field,
            "message": self.message,
            "value": None if self.value is None else str(self.value),
        }


class ReportTimeoutError(TimeoutError):
    """The report did not finish within the request deadline. Safe to retry."""
    retryable = True

    def __init__(self, timeout_seconds: float):
        super().__init__(f"Report build exceeded {timeout_seconds:.0f}s")
        self.timeout_seconds = timeout_seconds

    def to_dict(self) -> dict:
        return {
            "error": "timeout",
            "message": str(self),
            "retryable": self.retryable,
        }


# =============================================================================
# RECORDS
# =============================================================================

@dataclass(frozen=True)
class EnrollmentRecord:
    """
    One enrollment (vigência) of a person under an operator.

    A person may have several over time (re-enrollment, plan migration).
    `exclusion_date` is the last day the enrollment covers.
    """
    record_id: int
    cpf: str
    start_date: date
    status: EnrollmentStatus
    exclusion_date: Optional[date] = None
    operator: Optional[str] = None
    organization: Optional[str] = None
    plan: Optional[str] = None
    age: Optional[int] = None
    renewal_month: Optional[str] = None
    beneficiary_type: Optional[str] = None
    status_label: Optional[str] = None

    @property
    def age_bracket(self) -> str:
        return get_age_bracket(self.age)

    def is_active_at(self, as_of: date) -> bool:
        """
        Whether this record keeps the person covered on `as_of`.

        A pending or later exclusion still covers the day; without an
        exclusion the normalized status decides.
        """
        if self.exclusion_date is not None:
            return self.exclusion_date >= as_of
        return self.status == EnrollmentStatus.ACTIVE

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "EnrollmentRecord":
        """Build a record from a normalized enrollment feed row (dict or Series)."""
        label = row.get(COL_STATUS)
        return cls(
            record_id=to_optional_int(row.get(COL_RECORD_ID)) or 0,
            cpf=normalize_cpf(row.get(COL_CPF)),
            start_date=to_date(row.get(COL_START_DATE)),
            status=EnrollmentStatus.from_label(label),
            exclusion_date=to_date(row.get(COL_EXCLUSION_DATE)),
            operator=_optional_text(row.get(COL_OPERATOR)),
            organization=_optional_text(row.get(COL_ORGANIZATION)),
            plan=_optional_text(row.get(COL_PLAN)),
            age=to_optional_int(row.get(COL_AGE)),
            renewal_month=_optional_text(row.get(COL_RENEWAL_MONTH)),
            beneficiary_type=_optional_text(row.get(COL_BENEFICIARY_TYPE)),
            status_label=_optional_text(label),
        )


@dataclass(frozen=True)
class ClaimRecord:
    """
    One claim line. `revenue` is the person's billed figure repeated on the
    row, not an amount belonging to this claim.
    """
    cpf: str
    month: str
    amount: float
    revenue: Optional[float] = None
    event: Optional[str] = None
    operator: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            COL_CPF: self.cpf,
            COL_MONTH: self.month,
            COL_AMOUNT: self.amount,
            COL_REVENUE: self.revenue,
            COL_EVENT: self.event,
            COL_OPERATOR: self.operator,
        }


@dataclass(frozen=True)
class ReconciledLine:
    """One (month, person) pair with claims, after status reconciliation."""
    month: str
    cpf: str
    status: ClaimStatus
    claim_total: float
    revenue: float
    organization: str
    plan: str
    age_bracket: str
    renewal_month: str
    record_id: Optional[int] = None
    beneficiary_type: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'month': self.month,
            'cpf': self.cpf,
            'status': self.status.value,
            'claim_total': self.claim_total,
            'revenue': self.revenue,
            'organization': self.organization,
            'plan': self.plan,
            'age_bracket': self.age_bracket,
            'renewal_month': self.renewal_month,
            'record_id': self.record_id,
            'beneficiary_type': self.beneficiary_type,
        }


@dataclass
class FeedFilters:
    """
    Report filters.

    Empty lists mean "no filter". `operators` and `plan_exclude_patterns`
    scope both feeds before reconciliation; organization/plan/renewal
    month/type and CPF narrow the reconciled lines by the record each
    person was resolved to.
    """
    operators: list = field(default_factory=list)
    organizations: list = field(default_factory=list)
    plans: list = field(default_factory=list)
    renewal_months: list = field(default_factory=list)
    beneficiary_type: Optional[str] = None
    cpf: Optional[str] = None
    plan_exclude_patterns: list = field(default_factory=list)

    @property
    def narrows_lines(self) -> bool:
        """True when the filter narrows which persons are in the report."""
        return bool(self.organizations or self.plans or self.renewal_months or self.beneficiary_type or self.cpf)

    def cache_key(self) -> tuple:
        """Hashable, order-independent identity of this filter set."""
        return (
            tuple(sorted(self.operators)),
            tuple(sorted(self.organizations)),
            tuple(sorted(self.plans)),
            tuple(sorted(self.renewal_months)),
            self.beneficiary_type or "",
            self.cpf or "",
            tuple(sorted(self.plan_exclude_patterns)),
        )

    def to_dict(self) -> dict:
        return {
            'operators': list(self.operators),
            'organizations': list(self.organizations),
            'plans': list(self.plans),
            'renewal_months': list(self.renewal_months),
            'beneficiary_type': self.beneficiary_type,
            'cpf': self.cpf,
            'plan_exclude_patterns': list(self.plan_exclude_patterns),
        }


def _is_missing(value) -> bool:
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _optional_text(value) -> Optional[str]:
    if _is_missing(value):
        return None
    text = str(value).strip()
    return text or None
