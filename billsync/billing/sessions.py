"""Post-checkout confirmation of a checkout session owned by the caller."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, Optional

from .errors import InvalidInputError, NotFoundOrForbiddenError
from .models import Subscriber
from .plans import get_plan_by_price_id, resolve_plan_name
from .providers.base import BillingProvider
from .state import object_id, primary_item

if TYPE_CHECKING:  # pragma: no cover
    from billsync.db import DatabaseClient

logger = logging.getLogger(__name__)

SESSION_NOT_FOUND = "Checkout session not found or access denied"


class SessionVerifier:
    def __init__(self, db: "DatabaseClient", provider: BillingProvider):
        self._db = db
        self._provider = provider

    def verify(self, subscriber: Subscriber, session_id: Any) -> Dict[str, Any]:
        if not session_id or not isinstance(session_id, str):
            raise InvalidInputError("Session ID is required")

        customer = self._db.get_live_customer(subscriber.id)
        if customer is None:
            raise NotFoundOrForbiddenError(SESSION_NOT_FOUND)

        session = self._provider.retrieve_checkout_session(session_id)
        if session is None or object_id(session.get("customer")) != customer.customer_id:
            logger.warning("User %s asked for checkout session %s they do not own", subscriber.id, session_id)
            raise NotFoundOrForbiddenError(SESSION_NOT_FOUND)

        details = session.get("customer_details") or {}
        return {
            "sessionId": session.get("id") or session_id,
            "planName": self._plan_name(session),
            "customerEmail": session.get("customer_email") or details.get("email"),
            "paymentStatus": session.get("payment_status"),
            "subscriptionId": object_id(session.get("subscription")),
        }

    def _plan_name(self, session: Dict[str, Any]) -> Optional[str]:
        metadata = session.get("metadata") or {}
        name = metadata.get("plan_name") or metadata.get("planName")
        if name:
            return name

        subscription_id = object_id(session.get("subscription"))
        if not subscription_id:
            return None
        subscription = self._provider.retrieve_subscription(subscription_id)
        item = primary_item(subscription or {})
        price = (item or {}).get("price")
        if isinstance(price, dict):
            return resolve_plan_name(price)
        plan = get_plan_by_price_id(price)
        return plan.name if plan else None
