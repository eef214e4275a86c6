"""
Report export for the Sinistralidade report
Serializes the engine's report dict to JSON, CSV and DataFrames
"""

import json
from datetime import datetime
from typing import Dict, Optional

import pandas as pd

from claims_engine.utils.calculations import to_native
from constants import EXPORT_FILE_PREFIX

# Report sections that hold lists of flat rows
TABLE_SECTIONS = [
    'by_month',
    'by_status',
    'by_organization',
    'by_plan',
    'by_age_bracket',
    'by_renewal_month',
    'active_lives',
]


def _clean(value):
    """Recursively convert numpy values and NaN so json.dumps accepts the tree."""
    if isinstance(value, dict):
        return {str(k): _clean(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_clean(v) for v in value]
    return to_native(value)


def report_to_json(report: dict, indent: Optional[int] = 2) -> str:
    """
    Serialize a report to JSON.

    Keys are sorted, so the same report always gives byte-identical output.
    Missing shares and ratios are written as null.
    """
    return json.dumps(_clean(report), indent=indent, sort_keys=True, ensure_ascii=False, allow_nan=False)


def report_to_frames(report: dict) -> Dict[str, pd.DataFrame]:
    """One DataFrame per table section present in the report."""
    frames = {}
    for section in TABLE_SECTIONS:
        if section in report:
            frames[section] = pd.DataFrame(_clean(report[section]))
    if 'consolidated' in report:
        consolidated = dict(report['consolidated'])
        consolidated.pop('months', None)
        frames['consolidated'] = pd.DataFrame([_clean(consolidated)])
    return frames


def report_to_csv(report: dict, section: str = 'by_month') -> str:
    """
    Serialize one report section as CSV.

    Raises:
        KeyError: if the report has no such section
    """
    frames = report_to_frames(report)
    if section not in frames:
        raise KeyError(f"Report has no section '{section}'. Available: {', '.join(sorted(frames))}")
    return frames[section].to_csv(index=False)


def export_filename(report: dict, section: str, extension: str = "csv") -> str:
    """
    Build the download file name, e.g. Sinistralidade_by_month_2025-01_2025-03_20250401.csv
    """
    months = report.get('period') or []
    span = f"{months[0]}_{months[-1]}" if months else "sem_periodo"
    stamp = datetime.now().strftime('%Y%m%d')
    return f"{EXPORT_FILE_PREFIX}_{section}_{span}_{stamp}.{extension}"
