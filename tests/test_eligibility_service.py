"""
Test Suite for Eligibility Service - Sinistralidade
Effective enrollment resolution and month-end coverage

Run with: python -m pytest tests/test_eligibility_service.py
"""

import unittest
from datetime import date

import pandas as pd

from claims_engine import EnrollmentRecord, EnrollmentStatus, ReportValidationError
from claims_engine.services.eligibility_service import (
    EligibilityIndex,
    is_covered,
    resolve_enrollment,
)


def make_record(record_id, start, status=EnrollmentStatus.ACTIVE, exclusion=None, cpf='111', **kwargs):
    return EnrollmentRecord(
        record_id=record_id,
        cpf=cpf,
        start_date=start,
        status=status,
        exclusion_date=exclusion,
        **kwargs
    )


# =============================================================================
# Record coverage
# =============================================================================

class TestRecordCoverage(unittest.TestCase):
    """Whether a single record covers a reference date"""

    def test_active_without_exclusion(self):
        record = make_record(1, date(2025, 1, 1))
        self.assertTrue(record.is_active_at(date(2025, 6, 30)))

    def test_inactive_without_exclusion(self):
        record = make_record(1, date(2025, 1, 1), status=EnrollmentStatus.INACTIVE)
        self.assertFalse(record.is_active_at(date(2025, 1, 31)))

    def test_exclusion_date_is_last_covered_day(self):
        """Excluded on the reference date still counts as covered"""
        record = make_record(1, date(2025, 1, 1), exclusion=date(2025, 3, 31))
        self.assertTrue(record.is_active_at(date(2025, 3, 31)))
        self.assertFalse(record.is_active_at(date(2025, 4, 30)))

    def test_exclusion_overrides_status_label(self):
        """A future exclusion keeps an 'inactive' record covered until then"""
        record = make_record(1, date(2025, 1, 1), status=EnrollmentStatus.INACTIVE, exclusion=date(2025, 12, 31))
        self.assertTrue(record.is_active_at(date(2025, 2, 28)))

    def test_is_covered_none(self):
        self.assertFalse(is_covered(None, date(2025, 1, 31)))


# =============================================================================
# Resolution
# =============================================================================

class TestResolveEnrollment(unittest.TestCase):
    """Effective record selection"""

    def test_latest_start_wins(self):
        old = make_record(1, date(2024, 1, 1), status=EnrollmentStatus.INACTIVE, exclusion=date(2024, 12, 31))
        new = make_record(2, date(2025, 1, 1))
        self.assertEqual(resolve_enrollment([new, old], date(2025, 1, 31)), new)
        self.assertEqual(resolve_enrollment([new, old], date(2024, 6, 30)), old)

    def test_tie_broken_by_highest_record_id(self):
        """Two records starting the same day: the later created one wins"""
        first = make_record(7, date(2025, 1, 1), status=EnrollmentStatus.INACTIVE)
        second = make_record(9, date(2025, 1, 1))
        self.assertEqual(resolve_enrollment([second, first], date(2025, 1, 31)).record_id, 9)
        self.assertEqual(resolve_enrollment([first, second], date(2025, 1, 31)).record_id, 9)

    def test_start_after_reference_is_ignored(self):
        """A record starting after the month end does not count"""
        record = make_record(1, date(2025, 2, 1))
        self.assertIsNone(resolve_enrollment([record], date(2025, 1, 31)))

    def test_start_on_reference_date_counts(self):
        record = make_record(1, date(2025, 1, 31))
        self.assertEqual(resolve_enrollment([record], date(2025, 1, 31)), record)

    def test_no_records(self):
        self.assertIsNone(resolve_enrollment([], date(2025, 1, 31)))


# =============================================================================
# Index
# =============================================================================

class TestEligibilityIndex(unittest.TestCase):
    """Index built from the enrollment feed"""

    def setUp(self):
        self.enrollments = pd.DataFrame({
            'cpf': ['111', '222', '333', '333'],
            'status_beneficiario': ['ativo', 'ativo', 'cancelado', 'ativo'],
            'data_inicio_vigencia': ['2025-01-01', '2025-01-01', '2024-01-01', '2025-03-01'],
            'data_exclusao': [None, '2025-03-15', '2024-12-31', None],
            'entidade': ['ENT A', 'ENT B', 'ENT C', 'ENT C'],
            'plano': ['PLANO 1', 'PLANO 2', 'PLANO 3', 'PLANO 4'],
            'idade': [30, 45, 60, 60],
        })
        self.index = EligibilityIndex.from_dataframe(self.enrollments)

    def test_exclusion_mid_month_boundary(self):
        """Enrolled 2025-01-01, excluded 2025-03-15: February active, March not"""
        february = self.index.resolve_for_month('222', '2025-02')
        march = self.index.resolve_for_month('222', '2025-03')

        self.assertTrue(is_covered(february, date(2025, 2, 28)))
        self.assertIsNotNone(march)
        self.assertFalse(is_covered(march, date(2025, 3, 31)))

    def test_re_enrollment_switches_effective_record(self):
        """Cancelled 2024 record until March 2025, then the new one"""
        february = self.index.resolve_for_month('333', '2025-02')
        march = self.index.resolve_for_month('333', '2025-03')

        self.assertEqual(february.plan, 'PLANO 3')
        self.assertFalse(is_covered(february, date(2025, 2, 28)))
        self.assertEqual(march.plan, 'PLANO 4')
        self.assertTrue(is_covered(march, date(2025, 3, 31)))

    def test_unknown_cpf(self):
        self.assertIsNone(self.index.resolve('999', date(2025, 1, 31)))
        self.assertNotIn('999', self.index)
        self.assertEqual(self.index.records_for('999'), ())

    def test_cpf_lookup_is_normalized(self):
        self.assertIn('111', self.index)
        self.assertEqual(len(self.index), 3)
        self.assertEqual(self.index.cpfs, ['111', '222', '333'])

    def test_records_sorted_by_start(self):
        records = self.index.records_for('333')
        self.assertEqual([r.start_date for r in records], [date(2024, 1, 1), date(2025, 3, 1)])

    def test_index_agrees_with_resolve_enrollment(self):
        for cpf in self.index.cpfs:
            for as_of in (date(2024, 6, 30), date(2025, 2, 28), date(2025, 3, 31)):
                self.assertEqual(
                    self.index.resolve(cpf, as_of),
                    resolve_enrollment(self.index.records_for(cpf), as_of),
                )

    def test_active_lives_by_month(self):
        """Covered persons at each month end, with or without claims"""
        rows = self.index.active_lives_by_month(['2025-03', '2025-02', '2025-01'])
        self.assertEqual(rows, [
            {'month': '2025-01', 'active_lives': 2},
            {'month': '2025-02', 'active_lives': 2},
            {'month': '2025-03', 'active_lives': 2},
        ])

    def test_active_lives_by_month_with_record_filter(self):
        """Only persons whose resolved record passes the filter are counted"""
        rows = self.index.active_lives_by_month(
            ['2025-01', '2025-03'], include=lambda record: record.organization == 'ENT C',
        )
        self.assertEqual([row['active_lives'] for row in rows], [0, 1])

    def test_index_tie_break_matches_resolver(self):
        first = make_record(7, date(2025, 1, 1), status=EnrollmentStatus.INACTIVE)
        second = make_record(9, date(2025, 1, 1))
        index = EligibilityIndex([second, first])
        self.assertEqual(index.resolve('111', date(2025, 1, 31)).record_id, 9)
        self.assertIsNone(index.resolve('111', date(2024, 12, 31)))

    def test_records_without_start_date_are_skipped(self):
        df = pd.DataFrame({
            'cpf': ['111', '222'],
            'status': ['ativo', 'ativo'],
            'start_date': ['2025-01-01', None],
        })
        with self.assertLogs('claims_engine.services.eligibility_service', level='WARNING'):
            index = EligibilityIndex.from_dataframe(df)
        self.assertEqual(index.cpfs, ['111'])

    def test_missing_columns_raise(self):
        df = pd.DataFrame({'cpf': ['111'], 'status': ['ativo']})
        with self.assertRaises(ReportValidationError) as ctx:
            EligibilityIndex.from_dataframe(df)
        self.assertEqual(ctx.exception.field, 'enrollments')

    def test_empty_feed(self):
        index = EligibilityIndex.from_dataframe(pd.DataFrame())
        self.assertEqual(len(index), 0)
        self.assertEqual(index.active_lives_by_month(['2025-01']), [{'month': '2025-01', 'active_lives': 0}])


if __name__ == "__main__":
    unittest.main(verbosity=2)
