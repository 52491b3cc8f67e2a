"""Data structures describing subscribers, customer mappings and subscription records."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class SubscriptionStatus(str, Enum):
    """Normalized subscription status codes persisted on the subscription record."""

    INCOMPLETE = "incomplete"
    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"

    @classmethod
    def normalize(cls, value: Any) -> "SubscriptionStatus":
        if isinstance(value, cls):
            return value
        if not value:
            return cls.INCOMPLETE
        normalised = str(value).strip().lower()
        try:
            return cls(normalised)
        except ValueError:
            mapping = {
                "trial": cls.TRIALING,
                "past-due": cls.PAST_DUE,
                "unpaid": cls.PAST_DUE,
                "paused": cls.PAST_DUE,
                "cancelled": cls.CANCELED,
                "incomplete_expired": cls.CANCELED,
            }
            return mapping.get(normalised, cls.INCOMPLETE)

    @property
    def is_entitled(self) -> bool:
        return self in {SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING}


ENTITLED_STATUSES = (SubscriptionStatus.ACTIVE.value, SubscriptionStatus.TRIALING.value)


class BillingEventType(str, Enum):
    """Provider event types the reconciler knows how to apply."""

    CHECKOUT_COMPLETED = "checkout.session.completed"
    SUBSCRIPTION_CREATED = "customer.subscription.created"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"
    PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
    PAYMENT_FAILED = "invoice.payment_failed"

    @classmethod
    def parse(cls, value: Any) -> Optional["BillingEventType"]:
        try:
            return cls(str(value))
        except ValueError:
            return None


@dataclass(frozen=True)
class Subscriber:
    """Authenticated caller resolved from a bearer credential."""

    id: str
    email: Optional[str] = None


@dataclass
class CustomerRecord:
    user_id: str
    customer_id: str
    deleted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @property
    def is_live(self) -> bool:
        return self.deleted_at is None

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "CustomerRecord":
        return cls(
            user_id=str(record.get("user_id") or ""),
            customer_id=str(record.get("customer_id") or ""),
            deleted_at=parse_timestamp(record.get("deleted_at")),
            created_at=parse_timestamp(record.get("created_at")),
        )


@dataclass
class SubscriptionRecord:
    """Local projection of a provider subscription."""

    subscription_id: str
    user_id: str
    customer_id: Optional[str] = None
    price_id: Optional[str] = None
    plan_name: Optional[str] = None
    plan_interval: Optional[str] = None
    status: SubscriptionStatus = SubscriptionStatus.INCOMPLETE
    cancel_at_period_end: bool = False
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    amount_cents: Optional[int] = None
    currency: Optional[str] = None
    payment_method_brand: Optional[str] = None
    payment_method_last4: Optional[str] = None
    last_event_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "SubscriptionRecord":
        return cls(
            subscription_id=str(record.get("stripe_subscription_id") or ""),
            user_id=str(record.get("user_id") or ""),
            customer_id=record.get("stripe_customer_id"),
            price_id=record.get("stripe_price_id"),
            plan_name=record.get("plan_name"),
            plan_interval=record.get("plan_interval"),
            status=SubscriptionStatus.normalize(record.get("status")),
            cancel_at_period_end=bool(record.get("cancel_at_period_end")),
            current_period_start=parse_timestamp(record.get("current_period_start")),
            current_period_end=parse_timestamp(record.get("current_period_end")),
            amount_cents=record.get("amount_cents"),
            currency=record.get("currency"),
            payment_method_brand=record.get("payment_method_brand"),
            payment_method_last4=record.get("payment_method_last4"),
            last_event_at=parse_timestamp(record.get("last_event_at")),
            created_at=parse_timestamp(record.get("created_at")),
            updated_at=parse_timestamp(record.get("updated_at")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stripe_subscription_id": self.subscription_id,
            "user_id": self.user_id,
            "stripe_customer_id": self.customer_id,
            "stripe_price_id": self.price_id,
            "plan_name": self.plan_name,
            "plan_interval": self.plan_interval,
            "status": self.status.value,
            "cancel_at_period_end": self.cancel_at_period_end,
            "current_period_start": to_iso(self.current_period_start),
            "current_period_end": to_iso(self.current_period_end),
            "amount_cents": self.amount_cents,
            "currency": self.currency,
            "payment_method_brand": self.payment_method_brand,
            "payment_method_last4": self.payment_method_last4,
            "last_event_at": to_iso(self.last_event_at),
        }


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Accept ISO strings, unix seconds or datetimes and return an aware datetime."""

    if value in (None, "", 0):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(float(value), tz=timezone.utc)
    raw = str(value).strip()
    if not raw:
        return None
    if raw.isdigit():
        return datetime.fromtimestamp(int(raw), tz=timezone.utc)
    normalised = raw.replace("Z", "+00:00") if raw.endswith("Z") else raw
    try:
        parsed = datetime.fromisoformat(normalised)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def to_iso(value: Any) -> Optional[str]:
    parsed = parse_timestamp(value)
    return parsed.isoformat() if parsed else None
