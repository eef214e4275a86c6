"""
Eligibility Service for the claims ratio report.

Resolves which enrollment record (vigência) was in force for a person on a
reference date, and whether it kept the person covered on that date.

Rules:
- Only records that had started on or before the reference date count
- The latest start date wins; equal start dates go to the highest record id
- The chosen record covers the date if its exclusion date is on or after
  the date, or, without an exclusion date, if its status is active
"""

import logging
from collections import defaultdict
from datetime import date
from typing import Callable, Dict, Iterable, List, Optional

import pandas as pd

from claims_engine import EnrollmentRecord, ReportValidationError
from claims_engine.utils.periods import month_end
from claims_schema import (
    ENROLLMENT_REQUIRED_COLUMNS,
    normalize_cpf,
    normalize_enrollment_df,
    validate_feed_columns,
)

logger = logging.getLogger(__name__)


def _sort_key(record: EnrollmentRecord):
    return (record.start_date, record.record_id)


def resolve_enrollment(records: Iterable[EnrollmentRecord], as_of: date) -> Optional[EnrollmentRecord]:
    """
    Pick the enrollment record effective for `as_of`.

    Args:
        records: All enrollment records of one person (any order)
        as_of: Reference date

    Returns:
        The record with the latest start date on or before `as_of` (ties go
        to the highest record id), or None when the person had not enrolled yet
    """
    candidates = [r for r in records if r.start_date is not None and r.start_date <= as_of]
    if not candidates:
        return None
    return max(candidates, key=_sort_key)


def is_covered(record: Optional[EnrollmentRecord], as_of: date) -> bool:
    """True when a resolved record keeps the person active on `as_of`."""
    return record is not None and record.is_active_at(as_of)


class EligibilityIndex:
    """
    Enrollment feed indexed by CPF for repeated resolution.

    Built once per report from an immutable snapshot and then only read,
    so one index can be shared by parallel workers.
    """

    def __init__(self, records: Iterable[EnrollmentRecord]):
        by_cpf: Dict[str, List[EnrollmentRecord]] = defaultdict(list)
        skipped = 0
        for record in records:
            if record.start_date is None or not record.cpf:
                skipped += 1
                continue
            by_cpf[record.cpf].append(record)

        if skipped:
            logger.warning(f"ELIGIBILITY: Skipped {skipped} enrollment record(s) without CPF or start date")

        self._by_cpf = {cpf: tuple(sorted(recs, key=_sort_key)) for cpf, recs in by_cpf.items()}

    @classmethod
    def from_dataframe(cls, enrollments_df: pd.DataFrame) -> "EligibilityIndex":
        """
        Build the index from an enrollment feed DataFrame (raw or normalized).

        Raises:
            ReportValidationError: if the feed lacks the columns the rules need
        """
        df = normalize_enrollment_df(enrollments_df)
        if df.empty:
            return cls([])

        is_valid, error = validate_feed_columns(df, ENROLLMENT_REQUIRED_COLUMNS)
        if not is_valid:
            raise ReportValidationError("enrollments", error)

        return cls(EnrollmentRecord.from_row(row) for row in df.to_dict('records'))

    def __contains__(self, cpf: str) -> bool:
        return normalize_cpf(cpf) in self._by_cpf

    def __len__(self) -> int:
        return len(self._by_cpf)

    @property
    def cpfs(self) -> List[str]:
        return sorted(self._by_cpf)

    def records_for(self, cpf: str) -> tuple:
        """All records of a person, ordered by start date then record id."""
        return self._by_cpf.get(normalize_cpf(cpf), ())

    def resolve(self, cpf: str, as_of: date) -> Optional[EnrollmentRecord]:
        """Effective record for a person on `as_of` (see resolve_enrollment)."""
        return resolve_enrollment(self.records_for(cpf), as_of)

    def resolve_for_month(self, cpf: str, month: str) -> Optional[EnrollmentRecord]:
        """Effective record for a person in a competence month (as of its last day)."""
        return self.resolve(cpf, month_end(month))

    def active_lives_by_month(
        self,
        months: Iterable[str],
        include: Optional[Callable[[EnrollmentRecord], bool]] = None,
    ) -> List[dict]:
        """
        Count persons covered at the end of each month, with or without claims.

        Args:
            months: 'YYYY-MM' months
            include: Optional predicate on the resolved record; persons whose
                record fails it are not counted (report filters)

        Returns:
            [{'month': 'YYYY-MM', 'active_lives': int}, ...] sorted by month
        """
        result = []
        for month in sorted(set(months)):
            as_of = month_end(month)
            active = 0
            for cpf in self._by_cpf:
                record = self.resolve(cpf, as_of)
                if is_covered(record, as_of) and (include is None or include(record)):
                    active += 1
            result.append({'month': month, 'active_lives': active})
        return result
