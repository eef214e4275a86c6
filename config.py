"""
Report configuration for the claims ratio engine.

Values come from environment variables (or a local .env file):
- DEFAULT_OPERATOR: operator reported when none is selected
- PLAN_EXCLUDE_PATTERNS: comma-separated plan name patterns to leave out
- CONSISTENCY_TOLERANCE: drift allowed between a total and its slices
- REPORT_MAX_WORKERS: threads used to reconcile month shards (1 = sequential)
- REPORT_TIMEOUT_SECONDS: deadline for one report build
"""

import os
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from dotenv import load_dotenv

from constants import (
    CONSISTENCY_TOLERANCE,
    DEFAULT_OPERATOR,
    DEFAULT_PLAN_EXCLUDE_PATTERNS,
)

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 1
DEFAULT_TIMEOUT_SECONDS = 120.0


def _parse_list(raw: Optional[str], default: List[str]) -> List[str]:
    if raw is None:
        return list(default)
    return [item.strip().upper() for item in raw.split(",") if item.strip()]


def _parse_number(raw: Optional[str], default, cast):
    if raw is None or not raw.strip():
        return default
    try:
        return cast(raw.strip())
    except ValueError:
        logger.warning(f"Ignoring invalid config value {raw!r}, using {default}")
        return default


@dataclass
class ReportConfig:
    """Configuration for report builds."""
    default_operator: str = DEFAULT_OPERATOR
    plan_exclude_patterns: List[str] = field(default_factory=lambda: list(DEFAULT_PLAN_EXCLUDE_PATTERNS))
    consistency_tolerance: float = CONSISTENCY_TOLERANCE
    max_workers: int = DEFAULT_MAX_WORKERS
    request_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS

    @classmethod
    def from_environment(cls) -> "ReportConfig":
        """Load configuration from environment variables."""
        return cls(
            default_operator=os.getenv("DEFAULT_OPERATOR", DEFAULT_OPERATOR),
            plan_exclude_patterns=_parse_list(os.getenv("PLAN_EXCLUDE_PATTERNS"), DEFAULT_PLAN_EXCLUDE_PATTERNS),
            consistency_tolerance=_parse_number(os.getenv("CONSISTENCY_TOLERANCE"), CONSISTENCY_TOLERANCE, float),
            max_workers=_parse_number(os.getenv("REPORT_MAX_WORKERS"), DEFAULT_MAX_WORKERS, int),
            request_timeout_seconds=_parse_number(os.getenv("REPORT_TIMEOUT_SECONDS"), DEFAULT_TIMEOUT_SECONDS, float),
        )

    def validate(self) -> Tuple[bool, str]:
        """Validate configuration. Returns (is_valid, error_message)."""
        if not self.default_operator or not self.default_operator.strip():
            return False, "DEFAULT_OPERATOR must not be empty"
        if self.consistency_tolerance < 0:
            return False, "CONSISTENCY_TOLERANCE must not be negative"
        if self.max_workers < 1:
            return False, "REPORT_MAX_WORKERS must be at least 1"
        if self.request_timeout_seconds <= 0:
            return False, "REPORT_TIMEOUT_SECONDS must be positive"
        return True, ""

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "default_operator": self.default_operator,
            "plan_exclude_patterns": list(self.plan_exclude_patterns),
            "consistency_tolerance": self.consistency_tolerance,
            "max_workers": self.max_workers,
            "request_timeout_seconds": self.request_timeout_seconds,
        }
