"""Pydantic schemas for the public API."""

from __future__ import annotations

from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class CheckoutRequest(BaseModel):
    price_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("price_id", "priceId"))
    success_url: Optional[str] = Field(default=None, validation_alias=AliasChoices("success_url", "successUrl"))
    cancel_url: Optional[str] = Field(default=None, validation_alias=AliasChoices("cancel_url", "cancelUrl"))


class CheckoutResponse(BaseModel):
    """Either ``sessionId``/``url`` or the ``swapped`` shape is populated."""

    model_config = ConfigDict(populate_by_name=True)

    session_id: Optional[str] = Field(default=None, alias="sessionId")
    url: Optional[str] = None
    success: Optional[bool] = None
    subscription_id: Optional[str] = Field(default=None, alias="subscriptionId")
    swapped: Optional[bool] = None


class SubscriptionActionRequest(BaseModel):
    action: Optional[str] = None
    subscription_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("subscription_id", "subscriptionId"),
    )
    price_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("price_id", "priceId", "new_price_id", "newPriceId"),
    )


class SubscriptionActionResponse(BaseModel):
    success: bool = True
    subscription_id: str
    message: str
    new_price_id: Optional[str] = None
    status: Optional[str] = None
    cancel_at_period_end: Optional[bool] = None
    current_period_end: Optional[str] = None


class VerifySessionRequest(BaseModel):
    session_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("sessionId", "session_id"))


class VerifySessionResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId")
    plan_name: Optional[str] = Field(default=None, alias="planName")
    customer_email: Optional[str] = Field(default=None, alias="customerEmail")
    payment_status: Optional[str] = Field(default=None, alias="paymentStatus")
    subscription_id: Optional[str] = Field(default=None, alias="subscriptionId")


class WebhookResponse(BaseModel):
    received: bool = True


class PlanSummary(BaseModel):
    key: str
    price_id: str
    name: str
    description: Optional[str] = None
    mode: str
    amount_cents: int
    currency: str
    interval: Optional[str] = None
    popular: bool = False
    features: List[str] = Field(default_factory=list)


class PlanCatalogResponse(BaseModel):
    plans: List[PlanSummary] = Field(default_factory=list)
