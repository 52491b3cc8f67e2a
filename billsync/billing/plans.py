"""Catalog of purchasable plans and plan-name resolution for provider prices."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple

from billsync.config import CONFIG

DEFAULT_PLAN_NAME = "Basic"
PRO_PLAN_NAME = "Pro"
# Prices at or above this amount (in cents) fall back to the Pro name.
PRO_AMOUNT_THRESHOLD = 2000


@dataclass(frozen=True)
class PlanDefinition:
    key: str
    price_id: str
    name: str
    description: str
    mode: str = "subscription"
    amount_cents: int = 0
    currency: str = "usd"
    interval: Optional[str] = None
    popular: bool = False
    features: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_subscription(self) -> bool:
        return self.mode == "subscription"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "price_id": self.price_id,
            "name": self.name,
            "description": self.description,
            "mode": self.mode,
            "amount_cents": self.amount_cents,
            "currency": self.currency,
            "interval": self.interval,
            "popular": self.popular,
            "features": list(self.features),
        }


_BASIC_FEATURES = (
    "Access to 100+ curated startup ideas",
    "Basic filtering and search",
    "Save up to 10 ideas",
    "Email support",
    "Monthly idea updates",
    "Basic market insights",
)

_PRO_FEATURES = (
    "Access to 500+ premium startup ideas",
    "Advanced filtering and AI-powered search",
    "Unlimited saved ideas",
    "Priority email & chat support",
    "Weekly trending reports",
    "Detailed market analysis",
    "Export to Notion, PDF, and more",
    "Community access and networking",
    "Early access to new features",
)

_DEFAULT_PLANS: Tuple[PlanDefinition, ...] = (
    PlanDefinition(
        key="basic-monthly",
        price_id="price_basic_monthly",
        name="Basic",
        description="Perfect for individual entrepreneurs and small projects",
        amount_cents=1000,
        interval="month",
        features=_BASIC_FEATURES,
    ),
    PlanDefinition(
        key="pro-monthly",
        price_id="price_pro_monthly",
        name="Pro",
        description="Ideal for serious entrepreneurs and growing teams",
        amount_cents=2000,
        interval="month",
        popular=True,
        features=_PRO_FEATURES,
    ),
    PlanDefinition(
        key="basic-yearly",
        price_id="price_basic_yearly",
        name="Basic",
        description="Perfect for individual entrepreneurs and small projects",
        amount_cents=8000,
        interval="year",
        features=_BASIC_FEATURES,
    ),
    PlanDefinition(
        key="pro-yearly",
        price_id="price_pro_yearly",
        name="Pro",
        description="Ideal for serious entrepreneurs and growing teams",
        amount_cents=16000,
        interval="year",
        popular=True,
        features=_PRO_FEATURES,
    ),
    PlanDefinition(
        key="one-time-report",
        price_id="price_one_time_report",
        name="Market Report",
        description="One-time purchase of comprehensive market analysis",
        mode="payment",
        amount_cents=4999,
        features=(
            "Comprehensive market analysis report",
            "Industry trends and insights",
            "Competitive landscape overview",
            "Growth opportunities identification",
            "PDF download included",
        ),
    ),
)


def list_plans(*, subscriptions_only: bool = False) -> List[PlanDefinition]:
    """Return the catalog with ``STRIPE_PRICE_OVERRIDES`` applied."""

    overrides = getattr(CONFIG, "stripe_price_overrides", {}) or {}
    plans: List[PlanDefinition] = []
    for plan in _DEFAULT_PLANS:
        price_id = overrides.get(plan.key)
        if price_id:
            plan = replace(plan, price_id=price_id)
        if subscriptions_only and not plan.is_subscription:
            continue
        plans.append(plan)
    return plans


def get_plan_by_price_id(price_id: Optional[str]) -> Optional[PlanDefinition]:
    if not price_id:
        return None
    return next((plan for plan in list_plans() if plan.price_id == price_id), None)


def resolve_plan_name(price: Optional[Dict[str, Any]]) -> str:
    """Work out the display name for a provider price.

    Price metadata wins, then the local catalog, then the amount heuristic.
    """

    if not isinstance(price, dict):
        return DEFAULT_PLAN_NAME
    metadata = price.get("metadata") or {}
    if isinstance(metadata, dict):
        for key in ("plan_name", "plan"):
            value = metadata.get(key)
            if value:
                return str(value)
    plan = get_plan_by_price_id(price.get("id"))
    if plan:
        return plan.name
    try:
        amount = int(price.get("unit_amount") or 0)
    except (TypeError, ValueError):
        amount = 0
    return PRO_PLAN_NAME if amount >= PRO_AMOUNT_THRESHOLD else DEFAULT_PLAN_NAME


def resolve_plan_interval(price: Optional[Dict[str, Any]]) -> str:
    if isinstance(price, dict):
        recurring = price.get("recurring") or {}
        if isinstance(recurring, dict) and recurring.get("interval"):
            return str(recurring["interval"])
    return "month"
