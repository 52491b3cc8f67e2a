"""FastAPI dependencies shared across the public API."""

from __future__ import annotations

from fastapi import Depends, Header

from ..auth import get_auth_manager
from ..billing import (
    BillingProvider,
    CheckoutService,
    SessionVerifier,
    Subscriber,
    SubscriptionService,
    WebhookReconciler,
    get_billing_provider,
)
from ..billing.errors import ProviderNotConfiguredError, UnauthenticatedError
from ..db import DatabaseClient, get_database_client


def get_subscriber(authorization: str = Header(None)) -> Subscriber:
    """Resolve the authenticated subscriber from the Authorization header."""

    if not authorization:
        raise UnauthenticatedError("Authorization header required")

    if not authorization.startswith("Bearer ") or not authorization[7:].strip():
        raise UnauthenticatedError("Invalid authorization header")

    subscriber = get_auth_manager().authenticate_request_token(authorization)
    if subscriber is None:
        raise UnauthenticatedError("Invalid or expired token")
    return subscriber


def get_database() -> DatabaseClient:
    """Return the shared database client instance."""

    return get_database_client()


def get_provider() -> BillingProvider:
    """Return the configured billing provider, or fail with 503."""

    provider = get_billing_provider()
    if not provider.is_configured():
        raise ProviderNotConfiguredError()
    return provider


def get_checkout_service(
    db: DatabaseClient = Depends(get_database),
    provider: BillingProvider = Depends(get_provider),
) -> CheckoutService:
    return CheckoutService(db, provider)


def get_subscription_service(
    db: DatabaseClient = Depends(get_database),
    provider: BillingProvider = Depends(get_provider),
) -> SubscriptionService:
    return SubscriptionService(db, provider)


def get_webhook_reconciler(
    db: DatabaseClient = Depends(get_database),
    provider: BillingProvider = Depends(get_provider),
) -> WebhookReconciler:
    return WebhookReconciler(db, provider)


def get_session_verifier(
    db: DatabaseClient = Depends(get_database),
    provider: BillingProvider = Depends(get_provider),
) -> SessionVerifier:
    return SessionVerifier(db, provider)
