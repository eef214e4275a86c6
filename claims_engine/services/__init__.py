"""
Services for the claims ratio engine.

These services hold the reconciliation and aggregation rules, keeping the
dashboard pages focused on presentation.
"""

from .eligibility_service import EligibilityIndex, resolve_enrollment
from .reconciliation_service import (
    apply_feed_filters,
    classify_claims,
    filter_lines,
    in_filter_scope,
    lines_to_frame,
    person_revenue,
    prefilter_claims,
    reconcile,
)
from .aggregation_service import (
    aggregate_by,
    aggregate_by_status,
    aggregate_monthly,
    consolidate,
    merge_monthly_aggregates,
)
from .report_service import ReportService, check_report_consistency

__all__ = [
    'EligibilityIndex',
    'resolve_enrollment',
    'apply_feed_filters',
    'classify_claims',
    'filter_lines',
    'in_filter_scope',
    'lines_to_frame',
    'person_revenue',
    'prefilter_claims',
    'reconcile',
    'aggregate_by',
    'aggregate_by_status',
    'aggregate_monthly',
    'consolidate',
    'merge_monthly_aggregates',
    'ReportService',
    'check_report_consistency',
]
