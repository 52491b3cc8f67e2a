"""Checkout initiation: customer resolution, plan validation and the swap shortcut."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Optional

from .errors import (
    AlreadySubscribedError,
    DuplicateRecordError,
    InconsistentStateError,
    InvalidInputError,
    InvalidPlanError,
    PersistenceError,
    ProviderError,
)
from .models import Subscriber
from .plans import resolve_plan_name
from .providers.base import BillingProvider
from .subscriptions import swap_subscription_price

if TYPE_CHECKING:  # pragma: no cover
    from billsync.db import DatabaseClient

logger = logging.getLogger(__name__)


@dataclass
class CheckoutResult:
    """Either a new checkout session or an in-place plan swap."""

    session_id: Optional[str] = None
    url: Optional[str] = None
    subscription_id: Optional[str] = None
    swapped: bool = False

    def to_dict(self) -> Dict[str, Any]:
        if self.swapped:
            return {"success": True, "subscriptionId": self.subscription_id, "swapped": True}
        return {"sessionId": self.session_id, "url": self.url}


class CheckoutService:
    """Starts a subscription checkout, or swaps the plan of an existing subscriber."""

    def __init__(self, db: "DatabaseClient", provider: BillingProvider):
        self._db = db
        self._provider = provider

    def start_checkout(
        self,
        subscriber: Subscriber,
        *,
        price_id: Any,
        success_url: Any,
        cancel_url: Any,
    ) -> CheckoutResult:
        _require_string("price_id", price_id)
        _require_string("success_url", success_url)
        _require_string("cancel_url", cancel_url)

        logger.info("Processing checkout for user %s, price %s", subscriber.id, price_id)

        customer_id = self.ensure_customer(subscriber)

        active = self._db.get_active_subscription(subscriber.id)
        if active is not None:
            if active.price_id == price_id:
                raise AlreadySubscribedError()
            logger.info(
                "User %s already subscribed via %s; swapping %s -> %s instead of a new checkout",
                subscriber.id,
                active.subscription_id,
                active.price_id,
                price_id,
            )
            swap_subscription_price(self._provider, active.subscription_id, price_id)
            return CheckoutResult(subscription_id=active.subscription_id, swapped=True)

        price = self._validate_price(price_id)
        metadata = {"user_id": subscriber.id, "plan_name": resolve_plan_name(price)}
        session = self._provider.create_checkout_session(
            customer_id=customer_id,
            price_id=price_id,
            success_url=success_url,
            cancel_url=cancel_url,
            metadata=metadata,
        )
        logger.info("Created checkout session %s for customer %s", session.get("id"), customer_id)
        return CheckoutResult(session_id=session.get("id"), url=session.get("url"))

    # ------------------------------------------------------------------
    # Customer resolution
    # ------------------------------------------------------------------
    def ensure_customer(self, subscriber: Subscriber) -> str:
        """Return the subscriber's live provider customer id, creating one if needed."""

        record = self._db.get_live_customer(subscriber.id)
        if record is not None:
            if self._provider.retrieve_customer(record.customer_id) is not None:
                logger.debug("Using existing customer %s", record.customer_id)
                return record.customer_id
            logger.warning(
                "Customer %s for user %s no longer exists at the provider; retiring mapping",
                record.customer_id,
                subscriber.id,
            )
            self._db.soft_delete_customer(subscriber.id, record.customer_id)

        return self._create_customer(subscriber)

    def _create_customer(self, subscriber: Subscriber) -> str:
        logger.info("Creating new provider customer for user %s", subscriber.id)
        customer = self._provider.create_customer(email=subscriber.email, user_id=subscriber.id)
        customer_id = customer.get("id")
        if not customer_id:
            raise ProviderError("Failed to create Stripe customer")

        try:
            self._db.insert_customer(subscriber.id, customer_id)
        except DuplicateRecordError:
            # A concurrent checkout for the same subscriber won the insert.
            self._compensate_customer(customer_id, subscriber.id)
            winner = self._db.get_live_customer(subscriber.id)
            if winner is None:
                raise InconsistentStateError("Failed to create customer mapping")
            logger.info("Reusing concurrently created customer %s for user %s", winner.customer_id, subscriber.id)
            return winner.customer_id
        except PersistenceError as exc:
            self._compensate_customer(customer_id, subscriber.id)
            raise InconsistentStateError("Failed to create customer mapping") from exc

        logger.info("Created customer %s for user %s", customer_id, subscriber.id)
        return customer_id

    def _compensate_customer(self, customer_id: str, user_id: str) -> None:
        try:
            self._provider.delete_customer(customer_id)
        except ProviderError as exc:
            logger.error(
                "Failed to delete orphaned customer %s for user %s; manual reconciliation required: %s",
                customer_id,
                user_id,
                exc,
            )

    def _validate_price(self, price_id: str) -> Dict[str, Any]:
        price = self._provider.retrieve_price(price_id)
        if price is None:
            raise InvalidPlanError()
        if price.get("active") is False:
            raise InvalidPlanError("Price is no longer available")
        if price.get("type") and price.get("type") != "recurring":
            raise InvalidPlanError("Price is not a subscription price")
        return price


def _require_string(name: str, value: Any) -> None:
    if not value or not isinstance(value, str):
        raise InvalidInputError(f"{name} is required and must be a string")
