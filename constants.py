"""
Constants and reference data for the Claims Ratio (Sinistralidade) report
Includes age brackets, status labels and default feed scoping
"""

# ==============================================================================
# APPLICATION
# ==============================================================================

APP_CONFIG = {
    'title': 'Sinistralidade - Claims Ratio Report',
    'icon': '📊',
    'layout': 'wide',
    'initial_sidebar_state': 'expanded',
}

PAGE_NAMES = {
    'claims_ratio': '1️⃣ Claims Ratio',
    'export': '2️⃣ Export Results',
}

# ==============================================================================
# FEED SCOPING
# ==============================================================================

# Operator whose beneficiaries and claims are reported when none is selected
DEFAULT_OPERATOR = "ASSIM SAÚDE"

# Dental and special-assistance products are not medical claims lines.
# Matched as case-insensitive substrings of the plan name (SQL: UPPER(plano) NOT LIKE '%DENT%')
DEFAULT_PLAN_EXCLUDE_PATTERNS = ["DENT", "AESP"]

# Beneficiary type value meaning "no type filter"
ALL_TYPES = "Todos"

# ==============================================================================
# ENROLLMENT STATUS LABELS
# ==============================================================================
# The enrollment feed stores free-text labels. Only these (case-insensitive,
# trimmed) count as active; every other label, including blanks and garbage,
# is normalized to inactive.
ACTIVE_STATUS_LABELS = frozenset({"ativo", "active"})

# ==============================================================================
# AGE BRACKETS
# ==============================================================================
# (label, min_age, max_age). Unknown ages fall in the first bracket.
AGE_BRACKET_RANGES = [
    ('00-18', 0, 18),
    ('19-23', 19, 23),
    ('24-28', 24, 28),
    ('29-33', 29, 33),
    ('34-38', 34, 38),
    ('39-43', 39, 43),
    ('44-48', 44, 48),
    ('49-53', 49, 53),
    ('54-58', 54, 58),
    ('59+', 59, None),
]

AGE_BRACKETS = [label for label, _, _ in AGE_BRACKET_RANGES]

# Organization/plan placeholder for claimants without an enrollment record
NOT_INFORMED = "Não informado"

# ==============================================================================
# REPORT DEFAULTS
# ==============================================================================

# Absolute drift tolerated between a parent total and the sum of its slices
CONSISTENCY_TOLERANCE = 0.01

# Rolling window used by the active lives chart (reference month + 11 prior)
ACTIVE_LIVES_WINDOW_MONTHS = 12

MONTH_FORMAT = "%Y-%m"
DATE_FORMAT = "%Y-%m-%d"

# Export file naming convention
EXPORT_FILE_PREFIX = "Sinistralidade"

# Color scheme for visualizations (one color per claim status)
STATUS_COLORS = {
    'active': '#2ca02c',
    'inactive': '#ff7f0e',
    'unmatched': '#7f7f7f',
    'total': '#1f77b4',
}

STATUS_LABELS = {
    'active': 'Ativos',
    'inactive': 'Inativos',
    'unmatched': 'Não localizados',
    'total': 'Total',
}

if __name__ == "__main__":
    # Display constants for verification
    print("Sinistralidade Constants")
    print("=" * 50)
    print(f"\nDefault operator: {DEFAULT_OPERATOR}")
    print(f"Plan exclusions: {', '.join(DEFAULT_PLAN_EXCLUDE_PATTERNS)}")
    print(f"\nAge brackets: {len(AGE_BRACKETS)}")
    print(f"  {', '.join(AGE_BRACKETS)}")

    print("\n✓ All constants loaded successfully!")
