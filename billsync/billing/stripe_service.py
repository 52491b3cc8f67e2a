"""Thin wrapper around the Stripe SDK used for checkout and subscription management."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional, Sequence

import stripe

from .errors import InvalidInputError, InvalidSignatureError, ProviderError, ProviderNotConfiguredError

logger = logging.getLogger(__name__)

PRORATION_BEHAVIOR = "create_prorations"


class StripeBillingService:
    """Handles the Stripe calls needed for hosted checkout and subscription changes.

    The SDK client is built once per service with an explicit request timeout
    and retry budget; pass ``client`` to substitute a test double.
    """

    def __init__(
        self,
        secret_key: str,
        *,
        webhook_secret: Optional[str] = None,
        webhook_tolerance: int = 300,
        timeout: float = 10.0,
        max_network_retries: int = 2,
        app_name: Optional[str] = None,
        client: Any = None,
    ):
        if not secret_key:
            raise ValueError("Stripe secret key is required")
        if app_name:
            stripe.set_app_info(app_name)
        self._webhook_secret = webhook_secret
        self._webhook_tolerance = webhook_tolerance
        if client is None:
            client = stripe.StripeClient(
                secret_key,
                http_client=stripe.RequestsClient(timeout=timeout),
                max_network_retries=max_network_retries,
            )
        self._client = client

    @property
    def _api(self) -> Any:
        return self._client.v1

    # ------------------------------------------------------------------
    # Customers & prices
    # ------------------------------------------------------------------
    def create_customer(self, *, email: Optional[str], user_id: str) -> Dict[str, Any]:
        params: Dict[str, Any] = {"metadata": {"user_id": user_id}}
        if email:
            params["email"] = email
        customer = self._call("create customer", self._api.customers.create, params=params)
        return _as_dict(customer)

    def retrieve_customer(self, customer_id: str) -> Optional[Dict[str, Any]]:
        """Return the customer, or ``None`` when it is missing or deleted."""

        customer = self._retrieve_or_none("retrieve customer", self._api.customers.retrieve, customer_id)
        if customer is None or customer.get("deleted"):
            return None
        return customer

    def delete_customer(self, customer_id: str) -> None:
        self._call("delete customer", self._api.customers.delete, customer_id)

    def retrieve_price(self, price_id: str) -> Optional[Dict[str, Any]]:
        return self._retrieve_or_none("retrieve price", self._api.prices.retrieve, price_id)

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------
    def create_checkout_session(
        self,
        *,
        customer_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
    ) -> Dict[str, Any]:
        params = {
            "customer": customer_id,
            "mode": "subscription",
            "line_items": [{"price": price_id, "quantity": 1}],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "allow_promotion_codes": True,
            "billing_address_collection": "auto",
            "metadata": metadata,
            "subscription_data": {"metadata": metadata},
        }
        session = self._call("create checkout session", self._api.checkout.sessions.create, params=params)
        return _as_dict(session)

    def retrieve_checkout_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        return self._retrieve_or_none(
            "retrieve checkout session",
            self._api.checkout.sessions.retrieve,
            session_id,
        )

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------
    def retrieve_subscription(
        self,
        subscription_id: str,
        *,
        expand: Optional[Sequence[str]] = None,
    ) -> Optional[Dict[str, Any]]:
        params = {"expand": list(expand)} if expand else None
        return self._retrieve_or_none(
            "retrieve subscription",
            self._api.subscriptions.retrieve,
            subscription_id,
            params=params,
        )

    def update_subscription_item_price(
        self,
        subscription_id: str,
        *,
        item_id: str,
        price_id: str,
    ) -> Dict[str, Any]:
        params = {
            "items": [{"id": item_id, "price": price_id}],
            "proration_behavior": PRORATION_BEHAVIOR,
        }
        subscription = self._call(
            "update subscription price",
            self._api.subscriptions.update,
            subscription_id,
            params=params,
        )
        return _as_dict(subscription)

    def set_cancel_at_period_end(self, subscription_id: str, cancel: bool) -> Dict[str, Any]:
        subscription = self._call(
            "update subscription cancellation",
            self._api.subscriptions.update,
            subscription_id,
            params={"cancel_at_period_end": cancel},
        )
        return _as_dict(subscription)

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------
    def parse_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """Verify the ``Stripe-Signature`` header and decode the event body."""

        if not self._webhook_secret:
            raise ProviderNotConfiguredError("Stripe webhook secret is not configured; cannot verify signatures")
        if not signature:
            raise InvalidSignatureError("No signature found")

        body = payload.decode("utf-8") if isinstance(payload, (bytes, bytearray)) else str(payload)
        try:
            stripe.WebhookSignature.verify_header(
                body,
                signature,
                self._webhook_secret,
                self._webhook_tolerance,
            )
        except stripe.SignatureVerificationError as exc:
            raise InvalidSignatureError(f"Webhook signature verification failed: {exc}") from exc

        try:
            event = json.loads(body)
        except json.JSONDecodeError as exc:
            raise InvalidInputError("Invalid webhook payload") from exc
        if not isinstance(event, dict):
            raise InvalidInputError("Invalid webhook payload")
        return event

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _call(self, action: str, method: Any, *args: Any, **kwargs: Any) -> Any:
        try:
            return method(*args, **kwargs)
        except stripe.StripeError as exc:
            raise _translate_error(action, exc) from exc

    def _retrieve_or_none(
        self,
        action: str,
        method: Any,
        object_id: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        try:
            if params:
                return _as_dict(method(object_id, params=params))
            return _as_dict(method(object_id))
        except stripe.InvalidRequestError as exc:
            if getattr(exc, "code", None) == "resource_missing":
                logger.info("Stripe could not %s %s: resource missing", action, object_id)
                return None
            raise _translate_error(action, exc) from exc
        except stripe.StripeError as exc:
            raise _translate_error(action, exc) from exc


def _translate_error(action: str, exc: Exception) -> ProviderError:
    provider_message = getattr(exc, "user_message", None) or str(exc)
    logger.error("Stripe failed to %s: %s", action, provider_message)
    return ProviderError(
        f"Failed to {action}: {provider_message}",
        provider_message=provider_message,
        code=getattr(exc, "code", None),
    )


def _as_dict(value: Any) -> Dict[str, Any]:
    if value is None:
        return {}
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    if isinstance(value, dict):
        return value
    return dict(value)
