"""
Core module initialization.
Exports configuration, logging utilities and the domain error taxonomy.
"""

from datetime import datetime, timezone

from dineops.core.config import get_settings, Settings, EnvironmentMode
from dineops.core.exceptions import (
    DineOpsError,
    ValidationError,
    NotFound,
    WriteFailure,
    CommitTimeout,
    WriteConflict,
    EntitlementBlocked,
    InvalidTransition,
)


def utc_now() -> datetime:
    """Current instant as an aware UTC datetime. The default clock."""
    return datetime.now(timezone.utc)


__all__ = [
    "get_settings",
    "Settings",
    "EnvironmentMode",
    "utc_now",
    "DineOpsError",
    "ValidationError",
    "NotFound",
    "WriteFailure",
    "CommitTimeout",
    "WriteConflict",
    "EntitlementBlocked",
    "InvalidTransition",
]
