"""Billing provider registry and helpers."""

from __future__ import annotations

from functools import lru_cache
from typing import Callable, Dict, Optional

from billsync.config import CONFIG

from ..errors import ProviderNotConfiguredError
from .base import BillingProvider
from .stripe_provider import StripeBillingProvider

_REGISTRY_FACTORIES: Dict[str, Callable[[], BillingProvider]] = {
    "stripe": StripeBillingProvider,
}


@lru_cache()
def _get_provider_instance(provider_key: str) -> BillingProvider:
    factory = _REGISTRY_FACTORIES.get(provider_key)
    if factory is None:
        raise KeyError(f"Unknown billing provider: {provider_key}")
    return factory()


def get_billing_provider(provider_key: Optional[str] = None) -> BillingProvider:
    key = (provider_key or getattr(CONFIG, "billing_default_provider", "stripe")).strip().lower()
    return _get_provider_instance(key)


def reset_billing_providers() -> None:
    """Drop cached provider instances, e.g. after ``reload_config()``."""

    _get_provider_instance.cache_clear()


__all__ = [
    "BillingProvider",
    "ProviderNotConfiguredError",
    "StripeBillingProvider",
    "get_billing_provider",
    "reset_billing_providers",
]
