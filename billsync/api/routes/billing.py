"""Billing endpoints: checkout, subscription management, webhooks and session checks."""

from __future__ import annotations

import asyncio
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request, Response, status

from billsync.api.dependencies import (
    get_checkout_service,
    get_session_verifier,
    get_subscriber,
    get_subscription_service,
    get_webhook_reconciler,
)
from billsync.api.schemas import (
    CheckoutRequest,
    CheckoutResponse,
    PlanCatalogResponse,
    PlanSummary,
    SubscriptionActionRequest,
    SubscriptionActionResponse,
    VerifySessionRequest,
    VerifySessionResponse,
    WebhookResponse,
)
from billsync.billing import (
    CheckoutService,
    SessionVerifier,
    Subscriber,
    SubscriptionService,
    WebhookReconciler,
    list_plans,
)

SIGNATURE_HEADER = "Stripe-Signature"

router = APIRouter()


def _preflight() -> Response:
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/billing/checkout",
    response_model=CheckoutResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_200_OK,
)
def create_checkout(
    payload: CheckoutRequest,
    subscriber: Subscriber = Depends(get_subscriber),
    service: CheckoutService = Depends(get_checkout_service),
) -> CheckoutResponse:
    result = service.start_checkout(
        subscriber,
        price_id=payload.price_id,
        success_url=payload.success_url,
        cancel_url=payload.cancel_url,
    )
    return CheckoutResponse(
        session_id=result.session_id,
        url=result.url,
        success=True if result.swapped else None,
        subscription_id=result.subscription_id if result.swapped else None,
        swapped=True if result.swapped else None,
    )


@router.post(
    "/billing/subscription",
    response_model=SubscriptionActionResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_200_OK,
)
def manage_subscription(
    payload: SubscriptionActionRequest,
    subscriber: Subscriber = Depends(get_subscriber),
    service: SubscriptionService = Depends(get_subscription_service),
) -> Dict[str, Any]:
    return service.apply(
        subscriber,
        action=payload.action,
        subscription_id=payload.subscription_id,
        price_id=payload.price_id,
    )


@router.post("/billing/webhook", response_model=WebhookResponse, status_code=status.HTTP_200_OK)
async def stripe_webhook(
    request: Request,
    reconciler: WebhookReconciler = Depends(get_webhook_reconciler),
) -> Dict[str, Any]:
    payload = await request.body()
    signature = request.headers.get(SIGNATURE_HEADER)
    # Reconciliation makes blocking Stripe and Supabase calls.
    outcome = await asyncio.to_thread(reconciler.handle, payload, signature)
    return outcome.to_dict()


@router.post(
    "/billing/verify-session",
    response_model=VerifySessionResponse,
    status_code=status.HTTP_200_OK,
)
def verify_session(
    payload: VerifySessionRequest,
    subscriber: Subscriber = Depends(get_subscriber),
    verifier: SessionVerifier = Depends(get_session_verifier),
) -> VerifySessionResponse:
    summary = verifier.verify(subscriber, payload.session_id)
    return VerifySessionResponse(
        session_id=summary["sessionId"],
        plan_name=summary["planName"],
        customer_email=summary["customerEmail"],
        payment_status=summary["paymentStatus"],
        subscription_id=summary["subscriptionId"],
    )


@router.get("/billing/plans", response_model=PlanCatalogResponse, status_code=status.HTTP_200_OK)
def get_plans() -> PlanCatalogResponse:
    return PlanCatalogResponse(plans=[PlanSummary(**plan.to_dict()) for plan in list_plans()])


@router.options("/billing/checkout", status_code=status.HTTP_204_NO_CONTENT)
def checkout_preflight() -> Response:
    return _preflight()


@router.options("/billing/subscription", status_code=status.HTTP_204_NO_CONTENT)
def subscription_preflight() -> Response:
    return _preflight()


@router.options("/billing/webhook", status_code=status.HTTP_204_NO_CONTENT)
def webhook_preflight() -> Response:
    return _preflight()


@router.options("/billing/verify-session", status_code=status.HTTP_204_NO_CONTENT)
def verify_session_preflight() -> Response:
    return _preflight()
