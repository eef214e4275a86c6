"""
Formatting utilities for report display (Brazilian conventions).
"""

from typing import Optional

from constants import STATUS_LABELS


def format_currency(value: Optional[float], decimals: int = 2) -> str:
    """
    Format a number as Brazilian Real.

    Returns:
        Formatted string like "R$ 1.234,56"; "—" for missing values
    """
    if value is None:
        return "—"
    formatted = f"{abs(value):,.{decimals}f}"
    # Swap separators: 1,234.56 -> 1.234,56
    formatted = formatted.replace(",", "_").replace(".", ",").replace("_", ".")
    sign = "-" if value < 0 else ""
    return f"{sign}R$ {formatted}"


def format_percentage(value: Optional[float], decimals: int = 1) -> str:
    """Format a 0-1 share as a percentage; None (undefined share) shows "—"."""
    if value is None:
        return "—"
    return f"{value * 100:.{decimals}f}%".replace(".", ",")


def format_count(value: Optional[int]) -> str:
    if value is None:
        return "—"
    return f"{int(value):,}".replace(",", ".")


def status_label(status: str) -> str:
    """Portuguese display label for a status key ('active' -> 'Ativos')."""
    return STATUS_LABELS.get(status, status)
