"""
Access gating driven by the restaurant's block flag.
"""

from dineops.services.entitlements.gate import (
    AdminSessionHandle,
    EntitlementGate,
    ensure_not_blocked,
)

__all__ = ["AdminSessionHandle", "EntitlementGate", "ensure_not_blocked"]
