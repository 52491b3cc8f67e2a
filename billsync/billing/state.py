"""Subscription status transitions driven by provider events.

Every effect the webhook reconciler may have on a subscription record is
declared in ``TRANSITIONS``. Records are always matched by provider
subscription id. Two guards keep redelivered or reordered events from
corrupting the record:

* ``canceled`` is terminal; only another deletion event may touch it.
* each applied event stamps ``last_event_at`` and older events are skipped.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from .models import BillingEventType, SubscriptionRecord, SubscriptionStatus, parse_timestamp, to_iso
from .plans import resolve_plan_interval, resolve_plan_name

DEFAULT_CURRENCY = "usd"
# Expansions requested whenever a subscription is fetched for projection.
SUBSCRIPTION_EXPAND = ("default_payment_method",)


@dataclass(frozen=True)
class Transition:
    """Effect of one event type on the matched subscription record.

    ``status`` is the fixed target status; when ``None`` the status (and the
    price, period and cancellation fields) are copied from the provider's
    subscription object.
    """

    status: Optional[SubscriptionStatus] = None
    creates_record: bool = False

    @property
    def syncs_from_provider(self) -> bool:
        return self.status is None


TRANSITIONS: Dict[BillingEventType, Transition] = {
    BillingEventType.CHECKOUT_COMPLETED: Transition(creates_record=True),
    BillingEventType.SUBSCRIPTION_CREATED: Transition(),
    BillingEventType.SUBSCRIPTION_UPDATED: Transition(),
    BillingEventType.SUBSCRIPTION_DELETED: Transition(status=SubscriptionStatus.CANCELED),
    BillingEventType.PAYMENT_SUCCEEDED: Transition(status=SubscriptionStatus.ACTIVE),
    BillingEventType.PAYMENT_FAILED: Transition(status=SubscriptionStatus.PAST_DUE),
}


def transition_for(event_type: Any) -> Optional[Transition]:
    parsed = BillingEventType.parse(event_type)
    if parsed is None:
        return None
    return TRANSITIONS.get(parsed)


def skip_reason(
    record: Optional[SubscriptionRecord],
    event_type: BillingEventType,
    event_created: Optional[datetime],
) -> Optional[str]:
    """Return why an event must not be applied to ``record``, or ``None``."""

    if record is None:
        return None
    if record.status == SubscriptionStatus.CANCELED and event_type != BillingEventType.SUBSCRIPTION_DELETED:
        return "subscription already canceled"
    if record.last_event_at and event_created and event_created < record.last_event_at:
        return "stale event"
    return None


def build_updates(
    transition: Transition,
    *,
    subscription: Optional[Dict[str, Any]] = None,
    event_created: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Column updates for a subscription record under ``transition``."""

    if transition.syncs_from_provider:
        if not subscription:
            raise ValueError("Provider subscription is required for this transition")
        updates = subscription_fields(subscription)
    else:
        updates = {"status": transition.status.value}
    if event_created is not None:
        updates["last_event_at"] = event_created.isoformat()
    return updates


def subscription_fields(subscription: Dict[str, Any]) -> Dict[str, Any]:
    """Project a provider subscription onto subscription record columns."""

    item = primary_item(subscription)
    price = (item or {}).get("price") or (item or {}).get("plan") or {}
    if not isinstance(price, dict):
        price = {"id": str(price)}
    period_start, period_end = extract_period_bounds(subscription)

    fields: Dict[str, Any] = {
        "status": SubscriptionStatus.normalize(subscription.get("status")).value,
        "cancel_at_period_end": bool(subscription.get("cancel_at_period_end") or subscription.get("cancel_at")),
        "current_period_start": period_start,
        "current_period_end": period_end,
    }
    if price.get("id"):
        fields["stripe_price_id"] = price["id"]
        fields["plan_name"] = resolve_plan_name(price)
        fields["plan_interval"] = resolve_plan_interval(price)
        fields["amount_cents"] = int(price.get("unit_amount") or 0)
        fields["currency"] = str(price.get("currency") or DEFAULT_CURRENCY).lower()
    fields.update(payment_method_fields(subscription))
    customer_id = object_id(subscription.get("customer"))
    if customer_id:
        fields["stripe_customer_id"] = customer_id
    return fields


def payment_method_fields(subscription: Dict[str, Any]) -> Dict[str, Any]:
    """Card brand and last four digits of the default payment method.

    Only an expanded payment method carries card details. A bare id leaves
    the stored values untouched; an explicit ``None`` clears them.
    """

    if "default_payment_method" not in subscription:
        return {}
    method = subscription.get("default_payment_method")
    if method is None:
        return {"payment_method_brand": None, "payment_method_last4": None}
    if not isinstance(method, dict):
        return {}
    card = method.get("card") if isinstance(method.get("card"), dict) else {}
    return {
        "payment_method_brand": card.get("brand"),
        "payment_method_last4": card.get("last4"),
    }


def primary_item(subscription: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    items = subscription_items(subscription)
    return items[0] if items else None


def subscription_items(subscription: Dict[str, Any]) -> list:
    items = subscription.get("items") or {}
    if isinstance(items, dict):
        data = items.get("data") or []
    elif isinstance(items, list):
        data = items
    else:
        data = []
    return [item for item in data if isinstance(item, dict)]


def extract_period_bounds(subscription: Dict[str, Any]) -> Tuple[Optional[str], Optional[str]]:
    """Current period bounds as ISO strings.

    Newer provider API versions report the period on the subscription item
    rather than the subscription, and the latest invoice carries it too.
    """

    start_iso = to_iso(subscription.get("current_period_start"))
    end_iso = to_iso(subscription.get("current_period_end"))

    if start_iso is None or end_iso is None:
        for item in subscription_items(subscription):
            if start_iso is None:
                start_iso = to_iso(item.get("current_period_start"))
            if end_iso is None:
                end_iso = to_iso(item.get("current_period_end"))
            if start_iso is not None and end_iso is not None:
                break

    if start_iso is None or end_iso is None:
        latest_invoice = subscription.get("latest_invoice")
        if isinstance(latest_invoice, dict):
            if start_iso is None:
                start_iso = to_iso(latest_invoice.get("period_start"))
            if end_iso is None:
                end_iso = to_iso(latest_invoice.get("period_end"))

    return start_iso, end_iso


def invoice_subscription_id(invoice: Dict[str, Any]) -> Optional[str]:
    """Subscription id an invoice was raised for, across API versions."""

    subscription_id = object_id(invoice.get("subscription"))
    if subscription_id:
        return subscription_id
    parent = invoice.get("parent") or {}
    if isinstance(parent, dict):
        details = parent.get("subscription_details") or {}
        if isinstance(details, dict):
            return object_id(details.get("subscription"))
    return None


def object_id(value: Any) -> Optional[str]:
    """Provider references are either bare ids or expanded objects."""

    if isinstance(value, dict):
        value = value.get("id")
    if value in (None, ""):
        return None
    return str(value)


def event_timestamp(event: Dict[str, Any]) -> Optional[datetime]:
    return parse_timestamp(event.get("created"))
