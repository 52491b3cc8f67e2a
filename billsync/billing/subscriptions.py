"""Owner-verified subscription changes: plan update, cancel and reactivate."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, Optional

from .errors import (
    InvalidInputError,
    InvalidPlanError,
    NotFoundOrForbiddenError,
    NotScheduledForCancellationError,
    SamePlanError,
)
from .models import Subscriber, SubscriptionRecord
from .providers.base import BillingProvider
from .state import extract_period_bounds, primary_item, subscription_items

if TYPE_CHECKING:  # pragma: no cover
    from billsync.db import DatabaseClient

logger = logging.getLogger(__name__)

ACTION_UPDATE = "update"
ACTION_CANCEL = "cancel"
ACTION_REACTIVATE = "reactivate"

_ACTION_ALIASES = {
    "update": ACTION_UPDATE,
    "update_subscription": ACTION_UPDATE,
    "cancel": ACTION_CANCEL,
    "cancel_subscription": ACTION_CANCEL,
    "reactivate": ACTION_REACTIVATE,
    "reactivate_subscription": ACTION_REACTIVATE,
}


def normalize_action(value: Any) -> str:
    action = _ACTION_ALIASES.get(str(value or "").strip().lower())
    if action is None:
        raise InvalidInputError("Invalid action" if value else "Action is required")
    return action


def swap_subscription_price(provider: BillingProvider, subscription_id: str, price_id: str) -> Dict[str, Any]:
    """Move the subscription's single billable item to ``price_id`` with proration."""

    subscription = provider.retrieve_subscription(subscription_id)
    if subscription is None:
        raise NotFoundOrForbiddenError("Subscription not found in Stripe")
    items = subscription_items(subscription)
    if not items:
        raise InvalidInputError("No subscription items found")
    if len(items) > 1:
        raise InvalidInputError("Subscription has more than one billable item")

    item = items[0]
    logger.info(
        "Updating subscription %s item %s to price %s",
        subscription_id,
        item.get("id"),
        price_id,
    )
    return provider.update_subscription_item_price(subscription_id, item_id=item["id"], price_id=price_id)


class SubscriptionService:
    """Applies subscriber-initiated changes to provider subscriptions.

    Local status is never written here; the webhook reconciler applies the
    provider's authoritative state once the change lands.
    """

    def __init__(self, db: "DatabaseClient", provider: BillingProvider):
        self._db = db
        self._provider = provider

    def apply(
        self,
        subscriber: Subscriber,
        *,
        action: Any,
        subscription_id: Any,
        price_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        resolved = normalize_action(action)
        logger.info("Processing %s for user %s", resolved, subscriber.id)
        if resolved == ACTION_UPDATE:
            return self.update(subscriber, subscription_id=subscription_id, price_id=price_id)
        if resolved == ACTION_CANCEL:
            return self.cancel(subscriber, subscription_id=subscription_id)
        return self.reactivate(subscriber, subscription_id=subscription_id)

    def update(self, subscriber: Subscriber, *, subscription_id: Any, price_id: Optional[str]) -> Dict[str, Any]:
        if not subscription_id or not price_id:
            raise InvalidInputError("Subscription ID and new price ID are required")
        record = self._owned_record(subscriber, subscription_id)
        if record.price_id == price_id:
            raise SamePlanError()
        if self._provider.retrieve_price(price_id) is None:
            raise InvalidPlanError()

        updated = swap_subscription_price(self._provider, record.subscription_id, price_id)
        item = primary_item(updated) or {}
        new_price = item.get("price") or {}
        _, period_end = extract_period_bounds(updated)
        logger.info("Subscription %s now on %s (%s)", record.subscription_id, price_id, updated.get("status"))
        return {
            "success": True,
            "subscription_id": updated.get("id") or record.subscription_id,
            "new_price_id": new_price.get("id") if isinstance(new_price, dict) else new_price or price_id,
            "status": updated.get("status"),
            "current_period_end": period_end,
            "message": "Subscription updated successfully. Changes will be reflected shortly.",
        }

    def cancel(self, subscriber: Subscriber, *, subscription_id: Any) -> Dict[str, Any]:
        if not subscription_id:
            raise InvalidInputError("Subscription ID is required")
        record = self._owned_record(subscriber, subscription_id)

        logger.info("Canceling subscription %s for user %s at period end", record.subscription_id, subscriber.id)
        canceled = self._provider.set_cancel_at_period_end(record.subscription_id, True)
        _, period_end = extract_period_bounds(canceled)
        return {
            "success": True,
            "subscription_id": canceled.get("id") or record.subscription_id,
            "cancel_at_period_end": bool(canceled.get("cancel_at_period_end", True)),
            "current_period_end": period_end,
            "message": "Subscription will be canceled at the end of the current billing period.",
        }

    def reactivate(self, subscriber: Subscriber, *, subscription_id: Any) -> Dict[str, Any]:
        if not subscription_id:
            raise InvalidInputError("Subscription ID is required")
        record = self._owned_record(subscriber, subscription_id)
        if not record.cancel_at_period_end:
            raise NotScheduledForCancellationError()

        logger.info("Reactivating subscription %s for user %s", record.subscription_id, subscriber.id)
        reactivated = self._provider.set_cancel_at_period_end(record.subscription_id, False)
        return {
            "success": True,
            "subscription_id": reactivated.get("id") or record.subscription_id,
            "cancel_at_period_end": bool(reactivated.get("cancel_at_period_end", False)),
            "message": "Subscription has been reactivated successfully.",
        }

    def _owned_record(self, subscriber: Subscriber, subscription_id: Any) -> SubscriptionRecord:
        if not isinstance(subscription_id, str):
            raise InvalidInputError("Subscription ID must be a string")
        record = self._db.get_subscription_for_user(subscription_id, subscriber.id)
        if record is None:
            raise NotFoundOrForbiddenError()
        return record
