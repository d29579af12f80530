"""
Plan Catalog

The plans a restaurant can purchase. Every plan grants the same 30-day
entitlement period; they differ in price and features.
"""

from dataclasses import dataclass, field

from dineops.core.exceptions import NotFound


@dataclass(frozen=True)
class PlanOffer:
    id: str
    name: str
    price: float
    duration: str = "30 days"
    features: tuple[str, ...] = field(default_factory=tuple)


PLAN_CATALOG: dict[str, PlanOffer] = {
    "basic": PlanOffer(
        id="basic",
        name="Basic",
        price=999,
        features=(
            "Up to 50 menu items",
            "Basic order management",
            "Customer support",
            "Basic analytics",
        ),
    ),
    "pro": PlanOffer(
        id="pro",
        name="Professional",
        price=1999,
        features=(
            "Unlimited menu items",
            "Advanced order management",
            "Priority customer support",
            "Staff management",
            "Table management",
        ),
    ),
    "enterprise": PlanOffer(
        id="enterprise",
        name="Enterprise",
        price=3999,
        features=(
            "Everything in Professional",
            "Multi-location support",
            "API access",
            "Advanced reporting",
        ),
    ),
}


def get_plan_offer(plan_id: str) -> PlanOffer:
    try:
        return PLAN_CATALOG[plan_id]
    except KeyError:
        raise NotFound("plan", plan_id)
