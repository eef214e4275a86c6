"""
Calculation utilities for the claims ratio report.

Small numeric helpers shared by the aggregators so every share and ratio
follows the same zero-denominator rule.
"""

import math
from typing import Optional

import numpy as np


def safe_ratio(numerator: float, denominator: float) -> Optional[float]:
    """
    numerator / denominator, or None when the denominator is zero or missing.

    Never returns NaN or infinity, so the result can go straight into JSON.
    """
    if denominator is None or numerator is None:
        return None
    try:
        denominator = float(denominator)
        numerator = float(numerator)
    except (TypeError, ValueError):
        return None
    if denominator == 0 or math.isnan(denominator) or math.isnan(numerator):
        return None
    result = numerator / denominator
    if math.isinf(result):
        return None
    return result


def claims_ratio(cost: float, revenue: float) -> Optional[float]:
    """IS (índice de sinistralidade): claims cost over billed revenue."""
    return safe_ratio(cost, revenue)


def to_native(value):
    """Convert numpy scalars to Python types and NaN to None for serialization."""
    if value is None:
        return None
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
        return None
    return value


def within_tolerance(expected: float, actual: float, tolerance: float) -> bool:
    return abs(float(expected) - float(actual)) <= tolerance
