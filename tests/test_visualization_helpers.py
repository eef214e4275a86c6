"""
Test Suite for Visualization Helpers - Sinistralidade
Chart and table builders over a built report

Run with: python -m pytest tests/test_visualization_helpers.py
"""

import unittest

import pandas as pd

from claims_engine.services.report_service import ReportService
from claims_engine.utils.formatting import format_count, format_currency, format_percentage, status_label
from visualization_helpers import (
    build_dimension_table,
    build_monthly_table,
    generate_active_lives_chart,
    generate_age_bracket_chart,
    generate_claims_ratio_chart,
    generate_dimension_share_chart,
    generate_monthly_status_chart,
)


def sample_report():
    enrollments = pd.DataFrame({
        'cpf': ['111', '222'],
        'status_beneficiario': ['ativo', 'cancelado'],
        'data_inicio_vigencia': ['2025-01-01', '2024-01-01'],
        'entidade': ['ENT A', 'ENT B'],
        'plano': ['PLANO OURO', 'PLANO PRATA'],
        'idade': [30, 70],
    })
    claims = pd.DataFrame({
        'cpf': ['111', '222', '999'],
        'mes': ['2025-01', '2025-01', '2025-02'],
        'valor_procedimento': [100.0, 40.0, 10.0],
        'vlr_net': [200.0, 100.0, None],
    })
    return ReportService().build_report(enrollments, claims, ['2025-01', '2025-02'])


class TestCharts(unittest.TestCase):
    """Figures get one trace per status"""

    @classmethod
    def setUpClass(cls):
        cls.report = sample_report()

    def test_monthly_status_chart(self):
        fig = generate_monthly_status_chart(self.report['by_month'], measure='value')
        self.assertEqual(len(fig.data), 3)
        self.assertEqual(list(fig.data[0].x), ['2025-01', '2025-02'])

    def test_claims_ratio_chart_has_gaps(self):
        fig = generate_claims_ratio_chart(self.report['by_month'])
        self.assertIsNone(fig.data[0].y[1])

    def test_dimension_share_chart(self):
        fig = generate_dimension_share_chart(self.report['by_organization'], 'organization')
        self.assertEqual(len(fig.data), 1)

    def test_dimension_share_chart_without_rows(self):
        fig = generate_dimension_share_chart([], 'plan')
        self.assertEqual(len(fig.data), 0)

    def test_age_bracket_chart(self):
        fig = generate_age_bracket_chart(self.report['by_age_bracket'])
        self.assertEqual(len(fig.data), 3)
        self.assertEqual(len(fig.data[0].x), 10)

    def test_active_lives_chart(self):
        split = generate_active_lives_chart(self.report['active_lives'])
        plain = generate_active_lives_chart([{'month': '2025-01', 'active_lives': 5}])
        self.assertEqual(len(split.data), 2)
        self.assertEqual(len(plain.data), 1)


class TestTables(unittest.TestCase):
    """Display tables use Brazilian formatting"""

    def test_monthly_table(self):
        table = build_monthly_table(sample_report()['by_month'])
        self.assertEqual(len(table), 2)
        self.assertIn('Mês', table.columns)
        self.assertIn('IS total', table.columns)

    def test_dimension_table(self):
        rows = sample_report()['by_plan']
        table = build_dimension_table(rows, 'Plano', 'plan')
        self.assertEqual(len(table), len(rows))
        self.assertEqual(list(table.columns)[:3], ['Mês', 'Status', 'Plano'])
        self.assertIn('Ativos', table['Status'].tolist())


class TestFormatting(unittest.TestCase):
    """Brazilian number formatting"""

    def test_currency(self):
        self.assertEqual(format_currency(1234.56), 'R$ 1.234,56')
        self.assertEqual(format_currency(-10), '-R$ 10,00')
        self.assertEqual(format_currency(None), '—')

    def test_percentage_and_count(self):
        self.assertEqual(format_percentage(0.256), '25,6%')
        self.assertEqual(format_percentage(None), '—')
        self.assertEqual(format_count(12345), '12.345')

    def test_status_label(self):
        self.assertEqual(status_label('unmatched'), 'Não localizados')
        self.assertEqual(status_label('other'), 'other')


if __name__ == "__main__":
    unittest.main(verbosity=2)
