"""
Subscription plans and entitlement status.
"""

from dineops.services.subscriptions.ledger import SubscriptionLedger
from dineops.services.subscriptions.plans import PLAN_CATALOG, PlanOffer, get_plan_offer

__all__ = [
    "SubscriptionLedger",
    "PLAN_CATALOG",
    "PlanOffer",
    "get_plan_offer",
]
