"""
Feed DataFrame Schema - Single Source of Truth

The engine consumes two flat feeds: the enrollment feed (reg_beneficiarios)
and the claims feed (reg_procedimentos, optionally joined with the per-person
billed revenue from reg_faturamento). Use normalize_enrollment_df() and
normalize_claims_df() so every module reads the same column names no matter
whether the feed came from the database, a CSV upload or a test fixture.
"""

import re
from datetime import date, datetime
from typing import Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd

from constants import ACTIVE_STATUS_LABELS, AGE_BRACKET_RANGES


# =============================================================================
# CANONICAL COLUMN NAMES
# =============================================================================

# Shared
COL_CPF = 'cpf'
COL_OPERATOR = 'operator'

# Enrollment feed
COL_RECORD_ID = 'record_id'
COL_ORGANIZATION = 'organization'
COL_PLAN = 'plan'
COL_AGE = 'age'
COL_STATUS = 'status'
COL_START_DATE = 'start_date'
COL_EXCLUSION_DATE = 'exclusion_date'
COL_RENEWAL_MONTH = 'renewal_month'
COL_BENEFICIARY_TYPE = 'beneficiary_type'

# Claims feed
COL_MONTH = 'month'                # Competence month, 'YYYY-MM'
COL_AMOUNT = 'amount'
COL_REVENUE = 'revenue'            # Billed revenue, per person not per claim
COL_EVENT = 'event'

ENROLLMENT_REQUIRED_COLUMNS = [COL_CPF, COL_STATUS, COL_START_DATE]
CLAIMS_REQUIRED_COLUMNS = [COL_CPF, COL_MONTH, COL_AMOUNT]

# Competence month text, 'YYYY-MM'
MONTH_PATTERN = re.compile(r'^(\d{4})-(\d{2})$')
MIN_YEAR = 1900


# =============================================================================
# COLUMN ALIASES
# =============================================================================
# Key = name used by the source tables or CSV exports
# Value = canonical name to normalize to

COLUMN_ALIASES = {
    # Person
    'CPF': COL_CPF,
    'cpf_do_beneficiario': COL_CPF,

    # Operator
    'operadora': COL_OPERATOR,
    'Operadora': COL_OPERATOR,

    # Enrollment
    'id_beneficiario': COL_RECORD_ID,
    'id': COL_RECORD_ID,
    'entidade': COL_ORGANIZATION,
    'Entidade': COL_ORGANIZATION,
    'plano': COL_PLAN,
    'Plano': COL_PLAN,
    'idade': COL_AGE,
    'Idade': COL_AGE,
    'status_beneficiario': COL_STATUS,
    'data_inicio_vigencia_beneficiario': COL_START_DATE,
    'data_inicio_vigencia': COL_START_DATE,
    'data_exclusao': COL_EXCLUSION_DATE,
    'mes_reajuste': COL_RENEWAL_MONTH,
    'tipo': COL_BENEFICIARY_TYPE,

    # Claims
    'mes': COL_MONTH,
    'competencia': COL_MONTH,
    'valor_procedimento': COL_AMOUNT,
    'valor_procedimentos': COL_AMOUNT,
    'vlr_net': COL_REVENUE,
    'valor_faturamento': COL_REVENUE,
    'evento': COL_EVENT,
}

# Date-valued columns that can be converted to a competence month
MONTH_SOURCE_COLUMNS = ['data_competencia', 'dt_competencia']


# =============================================================================
# NORMALIZATION FUNCTIONS
# =============================================================================

def normalize_columns(df: pd.DataFrame, inplace: bool = False) -> pd.DataFrame:
    """
    Rename any alias columns to their canonical names.

    Args:
        df: Feed DataFrame to normalize
        inplace: If True, modify df in place. If False, return a copy.

    Returns:
        DataFrame with canonical column names
    """
    if df is None:
        return pd.DataFrame()
    if not inplace:
        df = df.copy()

    rename_map = {}
    for alias, canonical in COLUMN_ALIASES.items():
        if alias in df.columns and canonical not in df.columns and canonical not in rename_map.values():
            rename_map[alias] = canonical

    if rename_map:
        df.rename(columns=rename_map, inplace=True)

    return df


def normalize_enrollment_df(df: pd.DataFrame) -> pd.DataFrame:
    """
    Normalize an enrollment feed: canonical names, parsed dates, stable record ids.

    Records without a record id get one from their row position so the
    "most recently created wins" tie-break stays deterministic.
    """
    df = normalize_columns(df)
    if df.empty:
        return df

    if COL_RECORD_ID not in df.columns:
        df[COL_RECORD_ID] = range(1, len(df) + 1)

    if COL_CPF in df.columns:
        df[COL_CPF] = df[COL_CPF].map(normalize_cpf)
    for col in (COL_START_DATE, COL_EXCLUSION_DATE):
        if col in df.columns:
            df[col] = df[col].map(to_date)

    return df


def normalize_claims_df(df: pd.DataFrame) -> pd.DataFrame:
    """
    Normalize a claims feed: canonical names, 'YYYY-MM' competence month,
    numeric amount and revenue.
    """
    df = normalize_columns(df)
    if df.empty:
        return df

    if COL_MONTH not in df.columns:
        for source_col in MONTH_SOURCE_COLUMNS:
            if source_col in df.columns:
                df[COL_MONTH] = df[source_col]
                break
    if COL_MONTH in df.columns:
        df[COL_MONTH] = df[COL_MONTH].map(to_month)

    if COL_CPF in df.columns:
        df[COL_CPF] = df[COL_CPF].map(normalize_cpf)
    if COL_AMOUNT in df.columns:
        df[COL_AMOUNT] = pd.to_numeric(df[COL_AMOUNT], errors='coerce').fillna(0.0)
    if COL_REVENUE in df.columns:
        df[COL_REVENUE] = pd.to_numeric(df[COL_REVENUE], errors='coerce')

    return df


def validate_feed_columns(df: pd.DataFrame, required: Iterable[str]) -> Tuple[bool, str]:
    """
    Check a normalized feed has the columns the engine needs.

    Returns:
        Tuple of (is_valid, error_message)
    """
    missing = [col for col in required if col not in df.columns]
    if missing:
        return False, f"Missing required columns: {', '.join(missing)}"
    return True, ""


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def get_age_bracket(age) -> str:
    """
    Map an age to its reporting bracket.

    Unknown ages (None, NaN, unparseable) and ages up to 18 fall in '00-18';
    each following bracket is a closed 5-year interval up to 58, and 59 or
    older is '59+'.

    Args:
        age: Age as int, float, numeric string or None

    Returns:
        Bracket label, e.g. '24-28'
    """
    age = to_optional_int(age)
    if age is None:
        return AGE_BRACKET_RANGES[0][0]

    # Brackets are ascending, so the first upper bound that fits wins
    for label, _, max_age in AGE_BRACKET_RANGES:
        if max_age is None or age <= max_age:
            return label
    return AGE_BRACKET_RANGES[-1][0]


def is_active_label(label) -> bool:
    """True when a free-text enrollment status label means 'active'."""
    if label is None or (isinstance(label, float) and np.isnan(label)):
        return False
    return str(label).strip().lower() in ACTIVE_STATUS_LABELS


def normalize_cpf(value) -> str:
    """Keep the digits of a CPF; non-digit identifiers are returned trimmed."""
    if value is None or (isinstance(value, float) and np.isnan(value)):
        return ""
    text = str(value).strip()
    if text.endswith('.0') and text[:-2].isdigit():
        text = text[:-2]
    digits = ''.join(ch for ch in text if ch.isdigit())
    return digits if digits else text


def to_optional_int(value) -> Optional[int]:
    """Parse an age-like value, returning None when it is missing or invalid."""
    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        return None
    try:
        return int(float(str(value).strip()))
    except (TypeError, ValueError):
        return None


def to_date(value) -> Optional[date]:
    """Convert str/datetime/Timestamp values to date; None and NaT become None."""
    if value is None:
        return None
    if isinstance(value, datetime):
        if pd.isna(value):
            return None
        return value.date()
    if isinstance(value, date):
        return value
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    text = str(value).strip()
    if not text:
        return None
    parsed = pd.to_datetime(text, errors='coerce')
    if pd.isna(parsed):
        return None
    return parsed.date()


def to_month(value) -> Optional[str]:
    """
    Convert a date-like value or 'YYYY-MM...' string to a 'YYYY-MM' competence month.

    Values that are not a real calendar month ('2025-13', 'abcd-ef') become None.
    """
    if isinstance(value, str):
        match = MONTH_PATTERN.match(value.strip())
        if match:
            year, month = int(match.group(1)), int(match.group(2))
            return match.group(0) if year >= MIN_YEAR and 1 <= month <= 12 else None
    parsed = to_date(value)
    if parsed is None:
        return None
    return f"{parsed.year:04d}-{parsed.month:02d}"


def distinct_values(df: pd.DataFrame, column: str) -> List[str]:
    """Sorted non-empty distinct values of a column (empty list when absent)."""
    if df is None or column not in df.columns:
        return []
    values = df[column].dropna().map(lambda v: str(v).strip())
    return sorted(v for v in values.unique() if v)
