"""Provider abstraction for handling billing operations."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Sequence


class BillingProvider(ABC):
    """Interface the checkout, subscription and webhook flows depend on.

    Retrieval methods return ``None`` when the provider reports the object as
    missing. Every other provider failure surfaces as ``ProviderError``.
    """

    key: str

    @abstractmethod
    def is_configured(self) -> bool:
        """Return True when the provider has the secrets it needs."""

    @abstractmethod
    def create_customer(self, *, email: Optional[str], user_id: str) -> Dict[str, Any]:
        """Create a provider-side customer tagged with the subscriber id."""

    @abstractmethod
    def retrieve_customer(self, customer_id: str) -> Optional[Dict[str, Any]]:
        """Fetch a live customer; deleted customers count as missing."""

    @abstractmethod
    def delete_customer(self, customer_id: str) -> None:
        """Delete a provider customer (used as a compensating action)."""

    @abstractmethod
    def retrieve_price(self, price_id: str) -> Optional[Dict[str, Any]]:
        """Fetch a price so callers can validate a requested plan."""

    @abstractmethod
    def create_checkout_session(
        self,
        *,
        customer_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
    ) -> Dict[str, Any]:
        """Create a hosted subscription-mode checkout session."""

    @abstractmethod
    def retrieve_checkout_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        """Fetch a checkout session by id."""

    @abstractmethod
    def retrieve_subscription(
        self,
        subscription_id: str,
        *,
        expand: Optional[Sequence[str]] = None,
    ) -> Optional[Dict[str, Any]]:
        """Fetch the latest subscription object, expanding the named references."""

    @abstractmethod
    def update_subscription_item_price(
        self,
        subscription_id: str,
        *,
        item_id: str,
        price_id: str,
    ) -> Dict[str, Any]:
        """Swap the price on one subscription item with proration."""

    @abstractmethod
    def set_cancel_at_period_end(self, subscription_id: str, cancel: bool) -> Dict[str, Any]:
        """Schedule or unschedule cancellation at the end of the paid period."""

    @abstractmethod
    def parse_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """Validate and decode webhook payloads for the provider."""
