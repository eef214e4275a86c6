"""
Test Suite for Report Configuration - Sinistralidade
Environment loading and validation

Run with: python -m pytest tests/test_config.py
"""

import os
import unittest
from unittest.mock import patch

from config import ReportConfig
from constants import DEFAULT_OPERATOR, DEFAULT_PLAN_EXCLUDE_PATTERNS


class TestReportConfig(unittest.TestCase):
    """Configuration from environment variables"""

    @patch.dict(os.environ, {}, clear=True)
    def test_defaults(self):
        config = ReportConfig.from_environment()
        self.assertEqual(config.default_operator, DEFAULT_OPERATOR)
        self.assertEqual(config.plan_exclude_patterns, DEFAULT_PLAN_EXCLUDE_PATTERNS)
        self.assertEqual(config.max_workers, 1)
        self.assertEqual(config.validate(), (True, ""))

    @patch.dict(os.environ, {
        'DEFAULT_OPERATOR': 'OUTRA',
        'PLAN_EXCLUDE_PATTERNS': 'dent, odonto,,',
        'CONSISTENCY_TOLERANCE': '0.5',
        'REPORT_MAX_WORKERS': '4',
        'REPORT_TIMEOUT_SECONDS': '30',
    }, clear=True)
    def test_from_environment(self):
        config = ReportConfig.from_environment()
        self.assertEqual(config.default_operator, 'OUTRA')
        self.assertEqual(config.plan_exclude_patterns, ['DENT', 'ODONTO'])
        self.assertEqual(config.consistency_tolerance, 0.5)
        self.assertEqual(config.max_workers, 4)
        self.assertEqual(config.request_timeout_seconds, 30.0)

    @patch.dict(os.environ, {'PLAN_EXCLUDE_PATTERNS': ''}, clear=True)
    def test_empty_exclusions(self):
        """An explicitly empty list disables plan exclusions"""
        self.assertEqual(ReportConfig.from_environment().plan_exclude_patterns, [])

    @patch.dict(os.environ, {'REPORT_MAX_WORKERS': 'many'}, clear=True)
    def test_invalid_number_falls_back(self):
        with self.assertLogs('config', level='WARNING'):
            config = ReportConfig.from_environment()
        self.assertEqual(config.max_workers, 1)

    def test_validate(self):
        self.assertFalse(ReportConfig(default_operator=' ').validate()[0])
        self.assertFalse(ReportConfig(consistency_tolerance=-1).validate()[0])
        self.assertFalse(ReportConfig(max_workers=0).validate()[0])
        is_valid, error = ReportConfig(request_timeout_seconds=0).validate()
        self.assertFalse(is_valid)
        self.assertIn('REPORT_TIMEOUT_SECONDS', error)

    def test_to_dict(self):
        data = ReportConfig().to_dict()
        self.assertEqual(data['default_operator'], DEFAULT_OPERATOR)
        self.assertEqual(data['request_timeout_seconds'], 120.0)


if __name__ == "__main__":
    unittest.main(verbosity=2)
