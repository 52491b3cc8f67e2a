"""Subscription checkout, management and webhook reconciliation."""

from .checkout import CheckoutResult, CheckoutService
from .errors import BillingError
from .models import BillingEventType, Subscriber, SubscriptionRecord, SubscriptionStatus
from .plans import PlanDefinition, list_plans, resolve_plan_name
from .providers import (
    BillingProvider,
    ProviderNotConfiguredError,
    get_billing_provider,
)
from .sessions import SessionVerifier
from .stripe_service import StripeBillingService
from .subscriptions import SubscriptionService
from .webhooks import WebhookOutcome, WebhookReconciler

__all__ = [
    "BillingError",
    "BillingEventType",
    "BillingProvider",
    "CheckoutResult",
    "CheckoutService",
    "PlanDefinition",
    "ProviderNotConfiguredError",
    "SessionVerifier",
    "StripeBillingService",
    "Subscriber",
    "SubscriptionRecord",
    "SubscriptionService",
    "SubscriptionStatus",
    "WebhookOutcome",
    "WebhookReconciler",
    "get_billing_provider",
    "list_plans",
    "resolve_plan_name",
]
