"""Repository-wide pytest fixtures."""

from __future__ import annotations

import json
from collections.abc import Generator
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest

from billsync.billing.errors import (
    DuplicateRecordError,
    InvalidSignatureError,
    PersistenceError,
    ProviderError,
)
from billsync.billing.models import (
    ENTITLED_STATUSES,
    CustomerRecord,
    Subscriber,
    SubscriptionRecord,
    SubscriptionStatus,
)
from billsync.billing.providers import BillingProvider, reset_billing_providers
from billsync.config import reload_config

VALID_SIGNATURE = "t=1,v1=valid"
PERIOD_START = 1_700_000_000
PERIOD_END = 1_702_592_000


@pytest.fixture(autouse=True)
def _set_default_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Pin configuration so tests never read a developer's real secrets."""

    monkeypatch.setenv("SUPABASE_URL", "https://example.supabase.co")
    monkeypatch.setenv("SUPABASE_ANON_KEY", "anon-key")
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "service-role-key")
    monkeypatch.setenv("SUPABASE_JWT_SECRET", "test-jwt-secret")
    monkeypatch.setenv("STRIPE_SECRET_KEY", "sk_test_123")
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", "whsec_test")
    monkeypatch.delenv("STRIPE_PRICE_OVERRIDES", raising=False)
    reload_config()
    reset_billing_providers()
    yield
    reset_billing_providers()


class InMemoryDatabase:
    """Dict-backed stand-in for ``SupabaseDatabaseClient`` that enforces the same unique indexes."""

    def __init__(self) -> None:
        self.customers: List[Dict[str, Any]] = []
        self.subscriptions: Dict[str, Dict[str, Any]] = {}
        self.fail_on: set[str] = set()
        self.calls: List[str] = []

    def _enter(self, name: str) -> None:
        self.calls.append(name)
        if name in self.fail_on:
            raise PersistenceError(f"{name} failed")

    # customers -------------------------------------------------------
    def get_live_customer(self, user_id: str) -> Optional[CustomerRecord]:
        self._enter("get_live_customer")
        for row in self.customers:
            if row["user_id"] == user_id and row["deleted_at"] is None:
                return CustomerRecord.from_record(row)
        return None

    def get_live_customer_by_customer_id(self, customer_id: str) -> Optional[CustomerRecord]:
        self._enter("get_live_customer_by_customer_id")
        for row in self.customers:
            if row["customer_id"] == customer_id and row["deleted_at"] is None:
                return CustomerRecord.from_record(row)
        return None

    def insert_customer(self, user_id: str, customer_id: str) -> CustomerRecord:
        self._enter("insert_customer")
        if any(row["user_id"] == user_id and row["deleted_at"] is None for row in self.customers):
            raise DuplicateRecordError(f"Live customer mapping already exists for user {user_id}")
        row = {"user_id": user_id, "customer_id": customer_id, "deleted_at": None, "created_at": _now()}
        self.customers.append(row)
        return CustomerRecord.from_record(row)

    def soft_delete_customer(self, user_id: str, customer_id: str) -> None:
        self._enter("soft_delete_customer")
        for row in self.customers:
            if row["user_id"] == user_id and row["customer_id"] == customer_id and row["deleted_at"] is None:
                row["deleted_at"] = _now()

    def live_customers(self, user_id: str) -> List[Dict[str, Any]]:
        return [row for row in self.customers if row["user_id"] == user_id and row["deleted_at"] is None]

    # subscriptions ---------------------------------------------------
    def add_subscription(self, subscription_id: str, user_id: str, **fields: Any) -> Dict[str, Any]:
        row = {
            "stripe_subscription_id": subscription_id,
            "user_id": user_id,
            "stripe_customer_id": fields.pop("customer_id", None),
            "stripe_price_id": fields.pop("price_id", None),
            "status": "active",
            "cancel_at_period_end": False,
            "created_at": _now(),
        }
        row.update(fields)
        self.subscriptions[subscription_id] = row
        return row

    def get_subscription(self, subscription_id: str) -> Optional[SubscriptionRecord]:
        self._enter("get_subscription")
        row = self.subscriptions.get(subscription_id)
        return SubscriptionRecord.from_record(row) if row else None

    def get_subscription_for_user(self, subscription_id: str, user_id: str) -> Optional[SubscriptionRecord]:
        self._enter("get_subscription_for_user")
        row = self.subscriptions.get(subscription_id)
        if row is None or row["user_id"] != user_id:
            return None
        return SubscriptionRecord.from_record(row)

    def get_active_subscription(self, user_id: str) -> Optional[SubscriptionRecord]:
        self._enter("get_active_subscription")
        for row in self.subscriptions.values():
            if row["user_id"] == user_id and row.get("status") in ENTITLED_STATUSES:
                return SubscriptionRecord.from_record(row)
        return None

    def upsert_subscription(self, subscription_id: str, fields: Dict[str, Any]) -> Optional[SubscriptionRecord]:
        self._enter("upsert_subscription")
        row = dict(self.subscriptions.get(subscription_id) or {"created_at": _now()})
        row.update(fields)
        row["stripe_subscription_id"] = subscription_id
        self._check_entitled_unique(row)
        self.subscriptions[subscription_id] = row
        return SubscriptionRecord.from_record(row)

    def update_subscription(self, subscription_id: str, updates: Dict[str, Any]) -> Optional[SubscriptionRecord]:
        self._enter("update_subscription")
        existing = self.subscriptions.get(subscription_id)
        if existing is None:
            return None
        row = dict(existing)
        row.update(updates)
        self._check_entitled_unique(row)
        self.subscriptions[subscription_id] = row
        return SubscriptionRecord.from_record(row)

    def cancel_other_subscriptions(self, user_id: str, keep_subscription_id: str) -> List[str]:
        self._enter("cancel_other_subscriptions")
        live = set(ENTITLED_STATUSES) | {SubscriptionStatus.PAST_DUE.value}
        canceled = []
        for sub_id, row in self.subscriptions.items():
            if sub_id != keep_subscription_id and row["user_id"] == user_id and row.get("status") in live:
                row["status"] = SubscriptionStatus.CANCELED.value
                canceled.append(sub_id)
        return canceled

    def _check_entitled_unique(self, row: Dict[str, Any]) -> None:
        if row.get("status") not in ENTITLED_STATUSES:
            return
        for sub_id, other in self.subscriptions.items():
            if (
                sub_id != row["stripe_subscription_id"]
                and other["user_id"] == row.get("user_id")
                and other.get("status") in ENTITLED_STATUSES
            ):
                raise DuplicateRecordError("Subscriber already has an entitled subscription")


class FakeBillingProvider(BillingProvider):
    """In-memory provider that records every call."""

    key = "fake"

    def __init__(self) -> None:
        self.customers: Dict[str, Dict[str, Any]] = {}
        self.prices: Dict[str, Dict[str, Any]] = {}
        self.sessions: Dict[str, Dict[str, Any]] = {}
        self.subscriptions: Dict[str, Dict[str, Any]] = {}
        self.calls: List[tuple] = []
        self.expansions: List[tuple] = []
        self.fail_delete_customer = False
        self._counter = 0

    def _next_id(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}_{self._counter}"

    def call_names(self) -> List[str]:
        return [call[0] for call in self.calls]

    # fixtures --------------------------------------------------------
    def add_price(self, price_id: str, *, amount: int = 1000, active: bool = True, recurring: bool = True,
                  interval: str = "month", metadata: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        price = {
            "id": price_id,
            "object": "price",
            "active": active,
            "type": "recurring" if recurring else "one_time",
            "unit_amount": amount,
            "recurring": {"interval": interval} if recurring else None,
            "metadata": metadata or {},
        }
        self.prices[price_id] = price
        return price

    def add_customer(self, customer_id: str, **fields: Any) -> Dict[str, Any]:
        customer = {"id": customer_id, "object": "customer", **fields}
        self.customers[customer_id] = customer
        return customer

    def add_subscription(self, subscription_id: str, *, customer_id: str, price_id: str, status: str = "active",
                         items: int = 1, metadata: Optional[Dict[str, str]] = None,
                         cancel_at_period_end: bool = False) -> Dict[str, Any]:
        price = self.prices.get(price_id) or self.add_price(price_id)
        subscription = {
            "id": subscription_id,
            "object": "subscription",
            "customer": customer_id,
            "status": status,
            "cancel_at_period_end": cancel_at_period_end,
            "metadata": metadata or {},
            "items": {
                "data": [
                    {
                        "id": f"si_{subscription_id}_{index}",
                        "price": dict(price),
                        "current_period_start": PERIOD_START,
                        "current_period_end": PERIOD_END,
                    }
                    for index in range(items)
                ]
            },
        }
        self.subscriptions[subscription_id] = subscription
        return subscription

    # BillingProvider -------------------------------------------------
    def is_configured(self) -> bool:
        return True

    def create_customer(self, *, email: Optional[str], user_id: str) -> Dict[str, Any]:
        self.calls.append(("create_customer", user_id))
        customer_id = self._next_id("cus")
        return self.add_customer(customer_id, email=email, metadata={"user_id": user_id})

    def retrieve_customer(self, customer_id: str) -> Optional[Dict[str, Any]]:
        self.calls.append(("retrieve_customer", customer_id))
        customer = self.customers.get(customer_id)
        if customer is None or customer.get("deleted"):
            return None
        return customer

    def delete_customer(self, customer_id: str) -> None:
        self.calls.append(("delete_customer", customer_id))
        if self.fail_delete_customer:
            raise ProviderError("Failed to delete customer")
        if customer_id in self.customers:
            self.customers[customer_id]["deleted"] = True

    def retrieve_price(self, price_id: str) -> Optional[Dict[str, Any]]:
        self.calls.append(("retrieve_price", price_id))
        return self.prices.get(price_id)

    def create_checkout_session(self, *, customer_id: str, price_id: str, success_url: str, cancel_url: str,
                                metadata: Dict[str, str]) -> Dict[str, Any]:
        self.calls.append(("create_checkout_session", customer_id, price_id))
        session_id = self._next_id("cs")
        session = {
            "id": session_id,
            "object": "checkout.session",
            "customer": customer_id,
            "mode": "subscription",
            "url": f"https://checkout.stripe.test/{session_id}",
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": dict(metadata),
            "price_id": price_id,
            "payment_status": "unpaid",
            "subscription": None,
        }
        self.sessions[session_id] = session
        return session

    def retrieve_checkout_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        self.calls.append(("retrieve_checkout_session", session_id))
        return self.sessions.get(session_id)

    def retrieve_subscription(self, subscription_id: str, *, expand=None) -> Optional[Dict[str, Any]]:
        self.calls.append(("retrieve_subscription", subscription_id))
        self.expansions.append(tuple(expand or ()))
        return self.subscriptions.get(subscription_id)

    def update_subscription_item_price(self, subscription_id: str, *, item_id: str, price_id: str) -> Dict[str, Any]:
        self.calls.append(("update_subscription_item_price", subscription_id, item_id, price_id))
        subscription = self.subscriptions[subscription_id]
        price = self.prices.get(price_id) or self.add_price(price_id)
        for item in subscription["items"]["data"]:
            if item["id"] == item_id:
                item["price"] = dict(price)
        return subscription

    def set_cancel_at_period_end(self, subscription_id: str, cancel: bool) -> Dict[str, Any]:
        self.calls.append(("set_cancel_at_period_end", subscription_id, cancel))
        subscription = self.subscriptions[subscription_id]
        subscription["cancel_at_period_end"] = cancel
        return subscription

    def parse_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        self.calls.append(("parse_event",))
        if signature != VALID_SIGNATURE:
            raise InvalidSignatureError("Webhook signature verification failed")
        return json.loads(payload)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def make_event(event_type: str, obj: Dict[str, Any], *, created: int = PERIOD_START, event_id: str = "evt_1") -> Dict[str, Any]:
    return {"id": event_id, "type": event_type, "created": created, "data": {"object": obj}}


@pytest.fixture
def fake_db() -> InMemoryDatabase:
    return InMemoryDatabase()


@pytest.fixture
def fake_provider() -> FakeBillingProvider:
    return FakeBillingProvider()


@pytest.fixture
def subscriber() -> Subscriber:
    return Subscriber(id="user-123", email="test@example.com")
