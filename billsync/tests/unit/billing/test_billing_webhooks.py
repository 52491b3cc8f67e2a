"""Tests for webhook reconciliation."""

from __future__ import annotations

import json
import logging

import pytest

from billsync.billing.errors import InvalidSignatureError, NotFoundOrForbiddenError
from billsync.billing.webhooks import WebhookReconciler
from conftest import PERIOD_START, VALID_SIGNATURE, make_event


@pytest.fixture
def reconciler(fake_db, fake_provider) -> WebhookReconciler:
    return WebhookReconciler(fake_db, fake_provider)


def _checkout_session(subscription_id="sub_1", customer_id="cus_1", user_id="user-123", mode="subscription"):
    metadata = {"user_id": user_id, "plan_name": "Basic"} if user_id else {}
    return {
        "id": "cs_1",
        "object": "checkout.session",
        "mode": mode,
        "customer": customer_id,
        "subscription": subscription_id,
        "metadata": metadata,
    }


def test_tampered_signature_is_rejected_without_mutation(reconciler, fake_db, subscriber) -> None:
    fake_db.add_subscription("sub_1", subscriber.id, status="active")
    payload = json.dumps(make_event("customer.subscription.deleted", {"id": "sub_1"})).encode()

    with pytest.raises(InvalidSignatureError) as excinfo:
        reconciler.handle(payload, "t=1,v1=forged")

    assert excinfo.value.status_code == 400
    assert fake_db.subscriptions["sub_1"]["status"] == "active"
    assert fake_db.calls == []


def test_checkout_completed_creates_record(reconciler, fake_db, fake_provider, subscriber) -> None:
    fake_provider.add_price("price_basic", amount=1000)
    fake_provider.add_subscription("sub_1", customer_id="cus_1", price_id="price_basic", status="trialing")

    outcome = reconciler.apply_event(make_event("checkout.session.completed", _checkout_session()))

    assert outcome.applied is True
    assert outcome.to_dict() == {"received": True}
    row = fake_db.subscriptions["sub_1"]
    assert row["user_id"] == subscriber.id
    assert row["status"] == "trialing"
    assert row["stripe_price_id"] == "price_basic"
    assert row["stripe_customer_id"] == "cus_1"
    assert row["plan_name"] == "Basic"
    assert row["current_period_end"] is not None


def test_checkout_completed_resolves_subscriber_from_customer_mapping(
    reconciler, fake_db, fake_provider, subscriber
) -> None:
    fake_db.insert_customer(subscriber.id, "cus_1")
    fake_provider.add_subscription("sub_1", customer_id="cus_1", price_id="price_basic")

    reconciler.apply_event(make_event("checkout.session.completed", _checkout_session(user_id=None)))

    assert fake_db.subscriptions["sub_1"]["user_id"] == subscriber.id


def test_checkout_completed_cancels_superseded_subscriptions(reconciler, fake_db, fake_provider, subscriber) -> None:
    fake_db.add_subscription("sub_old", subscriber.id, status="active")
    fake_db.add_subscription("sub_late", subscriber.id, status="past_due")
    fake_provider.add_subscription("sub_1", customer_id="cus_1", price_id="price_pro")

    reconciler.apply_event(make_event("checkout.session.completed", _checkout_session()))

    assert fake_db.subscriptions["sub_old"]["status"] == "canceled"
    assert fake_db.subscriptions["sub_late"]["status"] == "canceled"
    assert fake_db.subscriptions["sub_1"]["status"] == "active"


def test_payment_checkout_is_ignored(reconciler, fake_db, fake_provider) -> None:
    outcome = reconciler.apply_event(
        make_event("checkout.session.completed", _checkout_session(subscription_id=None, mode="payment"))
    )

    assert outcome.applied is False
    assert fake_db.subscriptions == {}
    assert fake_provider.calls == []


def test_subscription_updated_copies_provider_state(reconciler, fake_db, fake_provider, subscriber) -> None:
    fake_db.add_subscription("sub_1", subscriber.id, price_id="price_basic", status="active")
    fake_provider.add_price("price_pro", amount=2000)
    subscription = fake_provider.add_subscription(
        "sub_1", customer_id="cus_1", price_id="price_pro", cancel_at_period_end=True
    )

    outcome = reconciler.apply_event(make_event("customer.subscription.updated", subscription))

    assert outcome.applied is True
    row = fake_db.subscriptions["sub_1"]
    assert row["stripe_price_id"] == "price_pro"
    assert row["plan_name"] == "Pro"
    assert row["cancel_at_period_end"] is True
    assert row["last_event_at"] is not None


def test_deletion_is_idempotent(reconciler, fake_db, subscriber) -> None:
    fake_db.add_subscription("sub_1", subscriber.id, status="active")
    event = make_event("customer.subscription.deleted", {"id": "sub_1", "status": "canceled"})

    reconciler.apply_event(event)
    first = dict(fake_db.subscriptions["sub_1"])
    reconciler.apply_event(event)
    second = dict(fake_db.subscriptions["sub_1"])

    assert first["status"] == "canceled"
    assert first == second


def test_stale_update_after_deletion_does_not_revive(reconciler, fake_db, fake_provider, subscriber) -> None:
    fake_db.add_subscription("sub_1", subscriber.id, status="active")
    subscription = fake_provider.add_subscription("sub_1", customer_id="cus_1", price_id="price_basic")

    reconciler.apply_event(make_event("customer.subscription.deleted", {"id": "sub_1"}, created=PERIOD_START + 60))
    outcome = reconciler.apply_event(
        make_event("customer.subscription.updated", subscription, created=PERIOD_START, event_id="evt_0")
    )

    assert outcome.applied is False
    assert outcome.reason == "subscription already canceled"
    assert fake_db.subscriptions["sub_1"]["status"] == "canceled"


def test_older_event_is_skipped(reconciler, fake_db, subscriber) -> None:
    fake_db.add_subscription("sub_1", subscriber.id, status="active")

    reconciler.apply_event(make_event("invoice.payment_failed", {"subscription": "sub_1"}, created=PERIOD_START + 60))
    outcome = reconciler.apply_event(
        make_event("invoice.payment_succeeded", {"subscription": "sub_1"}, created=PERIOD_START)
    )

    assert outcome.reason == "stale event"
    assert fake_db.subscriptions["sub_1"]["status"] == "past_due"


@pytest.mark.parametrize(
    "event_type, invoice, expected",
    [
        ("invoice.payment_succeeded", {"subscription": "sub_1"}, "active"),
        ("invoice.payment_failed", {"parent": {"subscription_details": {"subscription": "sub_1"}}}, "past_due"),
    ],
)
def test_invoice_events_set_status(reconciler, fake_db, subscriber, event_type, invoice, expected) -> None:
    fake_db.add_subscription("sub_1", subscriber.id, status="incomplete")

    reconciler.apply_event(make_event(event_type, invoice))

    assert fake_db.subscriptions["sub_1"]["status"] == expected


def test_unknown_event_type_is_a_no_op(reconciler, fake_db, fake_provider) -> None:
    payload = json.dumps(make_event("customer.created", {"id": "cus_1"})).encode()

    outcome = reconciler.handle(payload, VALID_SIGNATURE)

    assert outcome.applied is False
    assert outcome.reason == "unhandled event type"
    assert outcome.to_dict() == {"received": True}
    assert fake_db.calls == []


def test_unknown_subscription_is_a_no_op(reconciler, fake_db) -> None:
    outcome = reconciler.apply_event(make_event("customer.subscription.deleted", {"id": "sub_unknown"}))

    assert outcome.reason == "unknown subscription"
    assert fake_db.subscriptions == {}


def test_persistence_failure_is_logged_and_acknowledged(reconciler, fake_db, subscriber, caplog) -> None:
    fake_db.add_subscription("sub_1", subscriber.id, status="active")
    fake_db.fail_on.add("update_subscription")
    caplog.set_level(logging.ERROR)
    payload = json.dumps(make_event("invoice.payment_failed", {"subscription": "sub_1"})).encode()

    outcome = reconciler.handle(payload, VALID_SIGNATURE)

    assert outcome.to_dict() == {"received": True}
    assert outcome.applied is False
    assert any("Failed to apply invoice.payment_failed" in message for message in caplog.messages)


def test_resync_overwrites_from_provider(reconciler, fake_db, fake_provider, subscriber) -> None:
    fake_db.add_subscription("sub_1", subscriber.id, status="incomplete", price_id="price_basic")
    fake_provider.add_subscription("sub_1", customer_id="cus_1", price_id="price_basic", status="active")

    record = reconciler.resync("sub_1")

    assert record.status.value == "active"
    assert fake_db.subscriptions["sub_1"]["status"] == "active"


def test_resync_unknown_subscription(reconciler) -> None:
    with pytest.raises(NotFoundOrForbiddenError):
        reconciler.resync("sub_missing")


def test_checkout_completed_records_amount_and_card(reconciler, fake_db, fake_provider, subscriber) -> None:
    fake_provider.add_price("price_pro", amount=2000)
    subscription = fake_provider.add_subscription("sub_1", customer_id="cus_1", price_id="price_pro")
    subscription["default_payment_method"] = {"id": "pm_1", "card": {"brand": "visa", "last4": "4242"}}

    reconciler.apply_event(make_event("checkout.session.completed", _checkout_session()))

    row = fake_db.subscriptions["sub_1"]
    assert row["amount_cents"] == 2000
    assert row["currency"] == "usd"
    assert row["payment_method_brand"] == "visa"
    assert row["payment_method_last4"] == "4242"
    assert fake_provider.expansions == [("default_payment_method",)]


def test_resync_expands_payment_method(reconciler, fake_db, fake_provider, subscriber) -> None:
    fake_db.add_subscription("sub_1", subscriber.id, status="active", price_id="price_basic")
    subscription = fake_provider.add_subscription("sub_1", customer_id="cus_1", price_id="price_basic")
    subscription["default_payment_method"] = {"id": "pm_1", "card": {"brand": "amex", "last4": "0005"}}

    record = reconciler.resync("sub_1")

    assert record.payment_method_brand == "amex"
    assert record.payment_method_last4 == "0005"
    assert fake_provider.expansions == [("default_payment_method",)]


@pytest.mark.parametrize("data", [None, "sub_1", {"object": "sub_1"}, {"object": None}])
def test_event_without_object_is_acknowledged(reconciler, fake_db, data) -> None:
    event = {"id": "evt_1", "type": "customer.subscription.updated", "created": PERIOD_START, "data": data}

    outcome = reconciler.handle(json.dumps(event).encode(), VALID_SIGNATURE)

    assert outcome.applied is False
    assert outcome.reason == "malformed event"
    assert outcome.to_dict() == {"received": True}
    assert fake_db.calls == []
