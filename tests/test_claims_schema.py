"""
Test Suite for Feed Schema - Sinistralidade
Column normalization, age brackets and value coercion

Run with: python -m pytest tests/test_claims_schema.py
"""

import unittest
from datetime import date

import numpy as np
import pandas as pd

from claims_engine import EnrollmentStatus
from claims_schema import (
    COL_AMOUNT,
    COL_CPF,
    COL_MONTH,
    COL_ORGANIZATION,
    COL_RECORD_ID,
    COL_START_DATE,
    COL_STATUS,
    ENROLLMENT_REQUIRED_COLUMNS,
    get_age_bracket,
    is_active_label,
    normalize_claims_df,
    normalize_cpf,
    normalize_enrollment_df,
    to_date,
    to_month,
    validate_feed_columns,
)
from constants import AGE_BRACKETS


# =============================================================================
# Age brackets
# =============================================================================

class TestAgeBrackets(unittest.TestCase):
    """Age to reporting bracket mapping"""

    def test_edges(self):
        """18 is the last age of the first bracket, 19 opens the next"""
        self.assertEqual(get_age_bracket(18), '00-18')
        self.assertEqual(get_age_bracket(19), '19-23')
        self.assertEqual(get_age_bracket(23), '19-23')
        self.assertEqual(get_age_bracket(24), '24-28')
        self.assertEqual(get_age_bracket(58), '54-58')
        self.assertEqual(get_age_bracket(59), '59+')
        self.assertEqual(get_age_bracket(101), '59+')

    def test_unknown_age_falls_in_first_bracket(self):
        """None, NaN and unparseable ages are treated as 00-18"""
        self.assertEqual(get_age_bracket(None), '00-18')
        self.assertEqual(get_age_bracket(float('nan')), '00-18')
        self.assertEqual(get_age_bracket('abc'), '00-18')
        self.assertEqual(get_age_bracket(''), '00-18')

    def test_numeric_strings_and_floats(self):
        """Ages arriving as text or floats are parsed"""
        self.assertEqual(get_age_bracket('34'), '34-38')
        self.assertEqual(get_age_bracket(44.0), '44-48')
        self.assertEqual(get_age_bracket(np.int64(50)), '49-53')

    def test_every_age_maps_to_a_known_bracket(self):
        """The classifier is total over 0..120"""
        for age in range(0, 121):
            self.assertIn(get_age_bracket(age), AGE_BRACKETS)


# =============================================================================
# Status labels
# =============================================================================

class TestStatusLabels(unittest.TestCase):
    """Free-text status labels normalize to ACTIVE/INACTIVE once"""

    def test_active_labels(self):
        self.assertTrue(is_active_label('ativo'))
        self.assertTrue(is_active_label(' Ativo '))
        self.assertTrue(is_active_label('ACTIVE'))

    def test_everything_else_is_inactive(self):
        """Cancelled, suspended, blank and missing labels are not active"""
        for label in ('cancelado', 'suspenso', 'inativo', '', None, float('nan')):
            self.assertFalse(is_active_label(label))
            self.assertEqual(EnrollmentStatus.from_label(label), EnrollmentStatus.INACTIVE)

    def test_from_label_accepts_enum(self):
        self.assertEqual(EnrollmentStatus.from_label(EnrollmentStatus.ACTIVE), EnrollmentStatus.ACTIVE)


# =============================================================================
# Value coercion
# =============================================================================

class TestValueCoercion(unittest.TestCase):
    """CPF, date and month coercion"""

    def test_normalize_cpf_keeps_digits(self):
        self.assertEqual(normalize_cpf('123.456.789-01'), '12345678901')
        self.assertEqual(normalize_cpf(12345678901.0), '12345678901')
        self.assertEqual(normalize_cpf(' 999 '), '999')
        self.assertEqual(normalize_cpf(None), '')

    def test_to_date(self):
        self.assertEqual(to_date('2025-03-15'), date(2025, 3, 15))
        self.assertEqual(to_date(pd.Timestamp('2025-01-01 10:30')), date(2025, 1, 1))
        self.assertEqual(to_date(date(2025, 2, 28)), date(2025, 2, 28))
        self.assertIsNone(to_date(None))
        self.assertIsNone(to_date(pd.NaT))
        self.assertIsNone(to_date(''))

    def test_to_month(self):
        self.assertEqual(to_month('2025-03'), '2025-03')
        self.assertEqual(to_month('2025-03-31'), '2025-03')
        self.assertEqual(to_month(pd.Timestamp('2024-12-01')), '2024-12')
        self.assertIsNone(to_month(None))

    def test_to_month_rejects_impossible_months(self):
        """Month-shaped text that is not a calendar month is dropped"""
        self.assertIsNone(to_month('2025-13'))
        self.assertIsNone(to_month('2025-00'))
        self.assertIsNone(to_month('abcd-ef'))
        self.assertIsNone(to_month('0001-05'))


# =============================================================================
# Feed normalization
# =============================================================================

class TestFeedNormalization(unittest.TestCase):
    """Source column names map to the canonical schema"""

    def test_enrollment_aliases(self):
        """Portuguese source columns are renamed and dates parsed"""
        df = pd.DataFrame({
            'cpf': ['111.111.111-11'],
            'status_beneficiario': ['ativo'],
            'data_inicio_vigencia_beneficiario': ['2025-01-01'],
            'data_exclusao': [None],
            'entidade': ['ENTIDADE A'],
        })
        normalized = normalize_enrollment_df(df)

        self.assertIn(COL_STATUS, normalized.columns)
        self.assertIn(COL_ORGANIZATION, normalized.columns)
        self.assertEqual(normalized[COL_CPF].iloc[0], '11111111111')
        self.assertEqual(normalized[COL_START_DATE].iloc[0], date(2025, 1, 1))
        self.assertTrue(pd.isna(normalized['exclusion_date'].iloc[0]))

    def test_enrollment_record_ids_assigned_by_position(self):
        """Feeds without an id column get 1..n"""
        df = pd.DataFrame({
            'cpf': ['1', '1'],
            'status': ['ativo', 'ativo'],
            'start_date': ['2025-01-01', '2025-01-01'],
        })
        normalized = normalize_enrollment_df(df)
        self.assertEqual(normalized[COL_RECORD_ID].tolist(), [1, 2])

    def test_original_frame_untouched(self):
        df = pd.DataFrame({'cpf': ['1'], 'status_beneficiario': ['ativo'], 'data_inicio_vigencia': ['2025-01-01']})
        normalize_enrollment_df(df)
        self.assertIn('status_beneficiario', df.columns)

    def test_claims_month_from_competence_date(self):
        """data_competencia becomes a YYYY-MM month and amounts become numbers"""
        df = pd.DataFrame({
            'cpf': ['1', '2'],
            'data_competencia': [pd.Timestamp('2025-04-10'), pd.Timestamp('2025-05-01')],
            'valor_procedimento': ['100.5', 'abc'],
        })
        normalized = normalize_claims_df(df)

        self.assertEqual(normalized[COL_MONTH].tolist(), ['2025-04', '2025-05'])
        self.assertEqual(normalized[COL_AMOUNT].tolist(), [100.5, 0.0])

    def test_validate_feed_columns(self):
        df = pd.DataFrame({'cpf': ['1'], 'status': ['ativo']})
        is_valid, error = validate_feed_columns(df, ENROLLMENT_REQUIRED_COLUMNS)
        self.assertFalse(is_valid)
        self.assertIn('start_date', error)

        df['start_date'] = ['2025-01-01']
        self.assertEqual(validate_feed_columns(df, ENROLLMENT_REQUIRED_COLUMNS), (True, ""))

    def test_empty_and_missing_frames(self):
        self.assertTrue(normalize_enrollment_df(None).empty)
        self.assertTrue(normalize_claims_df(pd.DataFrame()).empty)


if __name__ == "__main__":
    unittest.main(verbosity=2)
