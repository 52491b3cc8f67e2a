"""Webhook reconciliation: apply signed provider events to subscription records."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, Optional

from .errors import BillingError, InconsistentStateError, NotFoundOrForbiddenError
from .models import BillingEventType, SubscriptionRecord, SubscriptionStatus
from .providers.base import BillingProvider
from .state import (
    TRANSITIONS,
    SUBSCRIPTION_EXPAND,
    Transition,
    build_updates,
    event_timestamp,
    invoice_subscription_id,
    object_id,
    skip_reason,
    subscription_fields,
)

if TYPE_CHECKING:  # pragma: no cover
    from billsync.db import DatabaseClient

logger = logging.getLogger(__name__)


@dataclass
class WebhookOutcome:
    """What the reconciler did with one delivered event."""

    event_id: Optional[str]
    event_type: Optional[str]
    applied: bool = False
    reason: Optional[str] = None
    subscription_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"received": True}


class WebhookReconciler:
    """Single writer of subscription status, period and price fields.

    Once an event's signature verifies, processing failures are logged and
    the event is still acknowledged; ``resync`` is the operator path for
    repairing a record after such a failure.
    """

    def __init__(self, db: "DatabaseClient", provider: BillingProvider):
        self._db = db
        self._provider = provider

    def handle(self, payload: bytes, signature: Optional[str]) -> WebhookOutcome:
        event = self._provider.parse_event(payload, signature)
        return self.apply_event(event)

    def apply_event(self, event: Dict[str, Any]) -> WebhookOutcome:
        raw_type = event.get("type")
        outcome = WebhookOutcome(event_id=event.get("id"), event_type=raw_type)

        event_type = BillingEventType.parse(raw_type)
        transition = TRANSITIONS.get(event_type) if event_type is not None else None
        if transition is None:
            logger.info("Ignoring unhandled event type %s (%s)", raw_type, outcome.event_id)
            outcome.reason = "unhandled event type"
            return outcome

        data = event.get("data")
        obj = data.get("object") if isinstance(data, dict) else None
        if not isinstance(obj, dict):
            logger.warning("%s event %s carries no object; nothing to apply", raw_type, outcome.event_id)
            outcome.reason = "malformed event"
            return outcome
        created = event_timestamp(event)
        logger.info("Processing %s event %s", raw_type, outcome.event_id)

        try:
            if event_type == BillingEventType.CHECKOUT_COMPLETED:
                self._apply_checkout(outcome, obj, created)
            elif event_type in (BillingEventType.PAYMENT_SUCCEEDED, BillingEventType.PAYMENT_FAILED):
                subscription_id = invoice_subscription_id(obj)
                if not subscription_id:
                    outcome.reason = "not a subscription invoice"
                    logger.info("Invoice %s has no subscription; nothing to apply", obj.get("id"))
                    return outcome
                self._apply_transition(outcome, subscription_id, event_type, transition, None, created)
            else:
                self._apply_transition(outcome, object_id(obj.get("id")), event_type, transition, obj, created)
        except BillingError as exc:
            outcome.applied = False
            outcome.reason = "processing failed"
            logger.error(
                "Failed to apply %s event %s for subscription %s: %s",
                raw_type,
                outcome.event_id,
                outcome.subscription_id,
                exc,
            )
        return outcome

    def resync(self, subscription_id: str) -> SubscriptionRecord:
        """Overwrite the local record with the provider's current subscription state."""

        record = self._db.get_subscription(subscription_id)
        if record is None:
            raise NotFoundOrForbiddenError(f"No local record for subscription {subscription_id}")
        subscription = self._provider.retrieve_subscription(subscription_id, expand=SUBSCRIPTION_EXPAND)
        if subscription is None:
            raise NotFoundOrForbiddenError(f"Subscription {subscription_id} not found at the provider")

        updates = subscription_fields(subscription)
        updates["last_event_at"] = datetime.now(timezone.utc).isoformat()
        updated = self._db.update_subscription(subscription_id, updates)
        logger.info("Resynced subscription %s: status %s", subscription_id, updates["status"])
        return updated or record

    # ------------------------------------------------------------------
    # Branches
    # ------------------------------------------------------------------
    def _apply_transition(
        self,
        outcome: WebhookOutcome,
        subscription_id: Optional[str],
        event_type: BillingEventType,
        transition: Transition,
        subscription: Optional[Dict[str, Any]],
        created: Optional[datetime],
    ) -> None:
        outcome.subscription_id = subscription_id
        if not subscription_id:
            outcome.reason = "missing subscription id"
            logger.warning("%s event %s carries no subscription id", event_type.value, outcome.event_id)
            return

        record = self._db.get_subscription(subscription_id)
        if record is None:
            outcome.reason = "unknown subscription"
            logger.info("No subscription record for %s; ignoring %s", subscription_id, event_type.value)
            return

        reason = skip_reason(record, event_type, created)
        if reason:
            outcome.reason = reason
            logger.info("Skipping %s for subscription %s: %s", event_type.value, subscription_id, reason)
            return

        updates = build_updates(transition, subscription=subscription, event_created=created)
        self._db.update_subscription(subscription_id, updates)
        outcome.applied = True
        logger.info("Subscription %s -> %s via %s", subscription_id, updates.get("status"), event_type.value)

    def _apply_checkout(
        self,
        outcome: WebhookOutcome,
        session: Dict[str, Any],
        created: Optional[datetime],
    ) -> None:
        if session.get("mode") != "subscription":
            outcome.reason = "not a subscription checkout"
            logger.info("Checkout session %s is not a subscription checkout", session.get("id"))
            return
        subscription_id = object_id(session.get("subscription"))
        outcome.subscription_id = subscription_id
        if not subscription_id:
            outcome.reason = "missing subscription id"
            logger.warning("Checkout session %s completed without a subscription", session.get("id"))
            return

        existing = self._db.get_subscription(subscription_id)
        if existing is not None and existing.status == SubscriptionStatus.CANCELED:
            outcome.reason = "subscription already canceled"
            logger.info("Subscription %s already canceled; ignoring checkout completion", subscription_id)
            return

        subscription = self._provider.retrieve_subscription(subscription_id, expand=SUBSCRIPTION_EXPAND)
        if subscription is None:
            raise InconsistentStateError(f"Subscription {subscription_id} from checkout not found at the provider")

        user_id = self._resolve_subscriber_id(session, subscription)
        if not user_id:
            raise InconsistentStateError(
                f"Cannot resolve subscriber for subscription {subscription_id}; manual reconciliation required"
            )

        fields = subscription_fields(subscription)
        fields["user_id"] = user_id
        metadata = _metadata(session)
        if metadata.get("plan_name") and "plan_name" not in fields:
            fields["plan_name"] = metadata["plan_name"]
        if "stripe_customer_id" not in fields and object_id(session.get("customer")):
            fields["stripe_customer_id"] = object_id(session.get("customer"))
        stamp = created
        if existing is not None and existing.last_event_at and (stamp is None or existing.last_event_at > stamp):
            stamp = existing.last_event_at
        if stamp is not None:
            fields["last_event_at"] = stamp.isoformat()

        superseded = self._db.cancel_other_subscriptions(user_id, subscription_id)
        if superseded:
            logger.info("Canceled superseded subscriptions %s for user %s", superseded, user_id)
        self._db.upsert_subscription(subscription_id, fields)
        outcome.applied = True
        logger.info("Recorded subscription %s for user %s (%s)", subscription_id, user_id, fields["status"])

    def _resolve_subscriber_id(self, session: Dict[str, Any], subscription: Dict[str, Any]) -> Optional[str]:
        for source in (_metadata(session), _metadata(subscription)):
            if source.get("user_id"):
                return str(source["user_id"])
        if session.get("client_reference_id"):
            return str(session["client_reference_id"])

        customer_id = object_id(session.get("customer")) or object_id(subscription.get("customer"))
        mapping = self._db.get_live_customer_by_customer_id(customer_id) if customer_id else None
        return mapping.user_id if mapping else None


def _metadata(obj: Dict[str, Any]) -> Dict[str, Any]:
    metadata = obj.get("metadata") or {}
    return metadata if isinstance(metadata, dict) else {}
