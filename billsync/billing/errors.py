"""Error taxonomy for checkout, subscription management and webhook reconciliation."""

from __future__ import annotations

from typing import Optional


class BillingError(Exception):
    """Base class for billing failures that map onto an HTTP response."""

    status_code: int = 500
    default_message: str = "Billing request failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class UnauthenticatedError(BillingError):
    status_code = 401
    default_message = "Failed to authenticate user"


class InvalidInputError(BillingError):
    status_code = 400
    default_message = "Invalid request"


class InvalidPlanError(BillingError):
    status_code = 400
    default_message = "Invalid price ID"


class AlreadySubscribedError(BillingError):
    status_code = 400
    default_message = "You already have an active subscription to this plan"


class SamePlanError(BillingError):
    status_code = 400
    default_message = "Subscription is already on this plan"


class NotFoundOrForbiddenError(BillingError):
    """Raised for missing records and for records owned by someone else alike."""

    status_code = 404
    default_message = "Subscription not found or access denied"


class NotScheduledForCancellationError(BillingError):
    status_code = 400
    default_message = "Subscription is not scheduled for cancellation"


class InvalidSignatureError(BillingError):
    status_code = 400
    default_message = "Webhook signature verification failed"


class ProviderError(BillingError):
    """The billing provider rejected or failed a call.

    ``provider_message`` keeps the raw provider text for operators; it is not
    guaranteed to be safe for end users.
    """

    status_code = 500
    default_message = "Billing provider request failed"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        provider_message: Optional[str] = None,
        code: Optional[str] = None,
    ):
        super().__init__(message)
        self.provider_message = provider_message
        self.code = code


class PersistenceError(BillingError):
    status_code = 500
    default_message = "Failed to access billing records"


class DuplicateRecordError(PersistenceError):
    """A write hit a uniqueness constraint."""

    default_message = "Billing record already exists"


class InconsistentStateError(BillingError):
    status_code = 500
    default_message = "Billing state is inconsistent"


class ProviderNotConfiguredError(BillingError):
    """Raised when a billing provider is missing required configuration."""

    status_code = 503
    default_message = "Billing provider is not configured"


__all__ = [
    "BillingError",
    "UnauthenticatedError",
    "InvalidInputError",
    "InvalidPlanError",
    "AlreadySubscribedError",
    "SamePlanError",
    "NotFoundOrForbiddenError",
    "NotScheduledForCancellationError",
    "InvalidSignatureError",
    "ProviderError",
    "PersistenceError",
    "DuplicateRecordError",
    "InconsistentStateError",
    "ProviderNotConfiguredError",
]
