"""
Filter option lists for the dashboard (operators, organizations, plans,
renewal months, beneficiary types).

The lists come from the enrollment feed and are costly to query, so pages
keep a FilterOptionsCache for the session: an explicit read-through cache
keyed by (operator, date range, filter set) with invalidate/refresh, in
place of a hidden module-level TTL cache.
"""

import logging
from datetime import date
from typing import Callable, Dict, List, Optional

import pandas as pd

from claims_engine import FeedFilters
from claims_schema import (
    COL_BENEFICIARY_TYPE,
    COL_OPERATOR,
    COL_ORGANIZATION,
    COL_PLAN,
    COL_RENEWAL_MONTH,
    COL_START_DATE,
    distinct_values,
    normalize_columns,
    to_month,
)

logger = logging.getLogger(__name__)

COL_START_MONTH = 'start_month'

OptionsLoader = Callable[[Optional[str], Optional[date], Optional[date]], pd.DataFrame]


def build_filter_options(options_df: pd.DataFrame, filters: Optional[FeedFilters] = None) -> dict:
    """
    Turn distinct enrollment attributes into the dashboard's option lists.

    Operators are listed for the whole feed. Organizations are narrowed by
    the selected operators; plans, renewal months and types by the selected
    operators and organizations, so dependent dropdowns only offer values
    that exist together.

    Args:
        options_df: Rows from ClaimsQueries.get_filter_options() or an enrollment feed
        filters: Current selection, if any

    Returns:
        Dict with operators, organizations, organizations_by_operator, plans,
        renewal_months, beneficiary_types and latest_start_month
    """
    df = normalize_columns(options_df)
    if df.empty:
        return {
            'operators': [],
            'organizations': [],
            'organizations_by_operator': {},
            'plans': [],
            'renewal_months': [],
            'beneficiary_types': [],
            'latest_start_month': None,
        }

    organizations_by_operator: Dict[str, List[str]] = {}
    if COL_OPERATOR in df.columns and COL_ORGANIZATION in df.columns:
        for operator, group in df.groupby(COL_OPERATOR):
            organizations_by_operator[str(operator)] = distinct_values(group, COL_ORGANIZATION)

    by_operator = df
    if filters is not None and filters.operators and COL_OPERATOR in df.columns:
        wanted = {op.strip().upper() for op in filters.operators}
        by_operator = df[df[COL_OPERATOR].astype(str).str.strip().str.upper().isin(wanted)]

    scoped = by_operator
    if filters is not None and filters.organizations and COL_ORGANIZATION in scoped.columns:
        scoped = scoped[scoped[COL_ORGANIZATION].isin(filters.organizations)]

    if COL_START_MONTH in df.columns:
        start_months = df[COL_START_MONTH].dropna()
    elif COL_START_DATE in df.columns:
        start_months = df[COL_START_DATE].map(to_month).dropna()
    else:
        start_months = pd.Series([], dtype=object)

    return {
        'operators': distinct_values(df, COL_OPERATOR),
        'organizations': distinct_values(by_operator, COL_ORGANIZATION),
        'organizations_by_operator': organizations_by_operator,
        'plans': distinct_values(scoped, COL_PLAN),
        'renewal_months': distinct_values(scoped, COL_RENEWAL_MONTH),
        # Listed Z to A so "Titular" comes before "Dependente"
        'beneficiary_types': sorted(distinct_values(scoped, COL_BENEFICIARY_TYPE), reverse=True),
        'latest_start_month': max(start_months) if len(start_months) else None,
    }


class FilterOptionsCache:
    """
    Read-through cache of filter option lists.

    Scope one instance to a session (st.session_state) or a request; nothing
    expires on its own, callers invalidate after a data load.
    """

    def __init__(self, loader: OptionsLoader):
        """
        Args:
            loader: Callable (operator, start_date, end_date) -> DataFrame,
                usually a partial of ClaimsQueries.get_filter_options
        """
        self._loader = loader
        self._entries: Dict[tuple, dict] = {}
        self.hits = 0
        self.misses = 0

    @staticmethod
    def make_key(operator: Optional[str], start_date: Optional[date] = None,
                 end_date: Optional[date] = None, filters: Optional[FeedFilters] = None) -> tuple:
        return (
            (operator or "").strip().upper(),
            start_date.isoformat() if start_date else "",
            end_date.isoformat() if end_date else "",
            filters.cache_key() if filters is not None else (),
        )

    def get(self, operator: Optional[str], start_date: Optional[date] = None,
            end_date: Optional[date] = None, filters: Optional[FeedFilters] = None) -> dict:
        """Return cached options, loading them on first use of the key."""
        key = self.make_key(operator, start_date, end_date, filters)
        if key in self._entries:
            self.hits += 1
            return self._entries[key]

        self.misses += 1
        return self._load(key, operator, start_date, end_date, filters)

    def refresh(self, operator: Optional[str], start_date: Optional[date] = None,
                end_date: Optional[date] = None, filters: Optional[FeedFilters] = None) -> dict:
        """Reload one key from the source, replacing any cached value."""
        key = self.make_key(operator, start_date, end_date, filters)
        return self._load(key, operator, start_date, end_date, filters)

    def invalidate(self, operator: Optional[str] = None) -> int:
        """
        Drop cached entries.

        Args:
            operator: Only drop this operator's entries; None drops everything

        Returns:
            Number of entries dropped
        """
        if operator is None:
            dropped = len(self._entries)
            self._entries.clear()
        else:
            target = operator.strip().upper()
            stale = [key for key in self._entries if key[0] == target]
            for key in stale:
                del self._entries[key]
            dropped = len(stale)
        logger.info(f"FILTER OPTIONS: Invalidated {dropped} cached entr{'y' if dropped == 1 else 'ies'}")
        return dropped

    def __len__(self) -> int:
        return len(self._entries)

    def _load(self, key, operator, start_date, end_date, filters) -> dict:
        logger.info(f"FILTER OPTIONS: Loading options for {key[0] or 'all operators'}")
        options = build_filter_options(self._loader(operator, start_date, end_date), filters)
        self._entries[key] = options
        return options
