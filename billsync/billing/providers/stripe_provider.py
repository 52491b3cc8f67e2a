"""Stripe implementation of the billing provider interface."""

from __future__ import annotations

from typing import Any, Dict, Optional, Sequence

from billsync.config import CONFIG

from ..errors import ProviderNotConfiguredError
from ..stripe_service import StripeBillingService
from .base import BillingProvider


class StripeBillingProvider(BillingProvider):
    key = "stripe"

    def __init__(self, service: Optional[StripeBillingService] = None) -> None:
        self._service = service

    def is_configured(self) -> bool:
        return self._service is not None or bool(getattr(CONFIG, "stripe_secret_key", None))

    def _ensure_service(self) -> StripeBillingService:
        if not self.is_configured():
            raise ProviderNotConfiguredError("Stripe billing is not configured")
        if self._service is None:
            self._service = StripeBillingService(
                getattr(CONFIG, "stripe_secret_key", None),
                webhook_secret=getattr(CONFIG, "stripe_webhook_secret", None),
                webhook_tolerance=getattr(CONFIG, "stripe_webhook_tolerance", 300),
                timeout=getattr(CONFIG, "stripe_request_timeout", 10.0),
                max_network_retries=getattr(CONFIG, "stripe_max_network_retries", 2),
                app_name=getattr(CONFIG, "stripe_app_name", None),
            )
        return self._service

    def create_customer(self, *, email: Optional[str], user_id: str) -> Dict[str, Any]:
        return self._ensure_service().create_customer(email=email, user_id=user_id)

    def retrieve_customer(self, customer_id: str) -> Optional[Dict[str, Any]]:
        return self._ensure_service().retrieve_customer(customer_id)

    def delete_customer(self, customer_id: str) -> None:
        self._ensure_service().delete_customer(customer_id)

    def retrieve_price(self, price_id: str) -> Optional[Dict[str, Any]]:
        return self._ensure_service().retrieve_price(price_id)

    def create_checkout_session(
        self,
        *,
        customer_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
    ) -> Dict[str, Any]:
        return self._ensure_service().create_checkout_session(
            customer_id=customer_id,
            price_id=price_id,
            success_url=success_url,
            cancel_url=cancel_url,
            metadata=metadata,
        )

    def retrieve_checkout_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        return self._ensure_service().retrieve_checkout_session(session_id)

    def retrieve_subscription(
        self,
        subscription_id: str,
        *,
        expand: Optional[Sequence[str]] = None,
    ) -> Optional[Dict[str, Any]]:
        return self._ensure_service().retrieve_subscription(subscription_id, expand=expand)

    def update_subscription_item_price(
        self,
        subscription_id: str,
        *,
        item_id: str,
        price_id: str,
    ) -> Dict[str, Any]:
        return self._ensure_service().update_subscription_item_price(
            subscription_id,
            item_id=item_id,
            price_id=price_id,
        )

    def set_cancel_at_period_end(self, subscription_id: str, cancel: bool) -> Dict[str, Any]:
        return self._ensure_service().set_cancel_at_period_end(subscription_id, cancel)

    def parse_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        return self._ensure_service().parse_event(payload, signature)


__all__ = ["StripeBillingProvider"]
