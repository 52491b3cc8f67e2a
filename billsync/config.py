"""Environment-driven runtime settings for the billing service."""

from __future__ import annotations

import json
import os
from types import SimpleNamespace
from typing import Optional, Sequence, Tuple


def _env_str(
    name: str,
    default: Optional[str] = None,
    *,
    alias: Optional[str] = None,
    empty_to_none: bool = True,
) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None and alias:
        raw = os.getenv(alias)
    if raw is None:
        return default
    value = raw.strip()
    if not value and empty_to_none:
        return None if default is None else default
    return value if value else default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_float(name: str, default: float, *, alias: Optional[str] = None) -> float:
    raw = os.getenv(name)
    if raw is None and alias:
        raw = os.getenv(alias)
    if raw is None:
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


def _env_tuple(name: str, default: Sequence[str]) -> Tuple[str, ...]:
    raw = os.getenv(name)
    if not raw:
        return tuple(default)
    items = tuple(part.strip() for part in raw.split(",") if part.strip())
    return items or tuple(default)


def _parse_price_overrides(raw: Optional[str]) -> dict[str, str]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    if not isinstance(parsed, dict):
        return {}
    overrides: dict[str, str] = {}
    for plan_key, price_id in parsed.items():
        if isinstance(price_id, str) and price_id.strip():
            overrides[str(plan_key).strip().lower()] = price_id.strip()
    return overrides


class Settings(SimpleNamespace):
    """Simple attribute container used throughout the codebase."""

CONFIG = Settings()


def _compute_values() -> dict[str, object]:
    # -----------------------------------------------------------------------
    # LOGGING
    # -----------------------------------------------------------------------
    log_level = _env_str("LOG_LEVEL", "INFO", empty_to_none=False).upper()

    # -----------------------------------------------------------------------
    # SUPABASE (AUTH + STORE)
    # -----------------------------------------------------------------------
    supabase_url = _env_str("SUPABASE_URL", None)
    supabase_anon_key = _env_str("SUPABASE_ANON_KEY", None)
    supabase_service_role_key = _env_str("SUPABASE_SERVICE_ROLE_KEY", None)
    supabase_jwt_secret = _env_str("SUPABASE_JWT_SECRET", None)

    # -----------------------------------------------------------------------
    # BILLING / STRIPE
    # -----------------------------------------------------------------------
    stripe_secret_key = _env_str("STRIPE_SECRET_KEY", None)
    stripe_webhook_secret = _env_str("STRIPE_WEBHOOK_SECRET", None)
    stripe_webhook_tolerance = _env_int("STRIPE_WEBHOOK_TOLERANCE", 300)
    stripe_request_timeout = _env_float("STRIPE_REQUEST_TIMEOUT", 10.0)
    stripe_max_network_retries = _env_int("STRIPE_MAX_NETWORK_RETRIES", 2)
    stripe_app_name = _env_str("STRIPE_APP_NAME", "billsync", empty_to_none=False)
    raw_price_overrides = _env_str("STRIPE_PRICE_OVERRIDES", None)
    billing_default_provider = _env_str("BILLING_PROVIDER_DEFAULT", "stripe", empty_to_none=False).lower()

    # -----------------------------------------------------------------------
    # HTTP API
    # -----------------------------------------------------------------------
    api_title = _env_str("API_TITLE", "Billsync API", empty_to_none=False)
    api_version = _env_str("API_VERSION", "1.0.0", empty_to_none=False)
    api_cors_origins = _env_tuple("API_CORS_ORIGINS", ("*",))

    return {
        "log_level": log_level,
        "supabase_url": supabase_url,
        "supabase_anon_key": supabase_anon_key,
        "supabase_service_role_key": supabase_service_role_key,
        "supabase_jwt_secret": supabase_jwt_secret,
        "stripe_secret_key": stripe_secret_key,
        "stripe_webhook_secret": stripe_webhook_secret,
        "stripe_webhook_tolerance": stripe_webhook_tolerance,
        "stripe_request_timeout": stripe_request_timeout,
        "stripe_max_network_retries": stripe_max_network_retries,
        "stripe_app_name": stripe_app_name,
        "stripe_price_overrides": _parse_price_overrides(raw_price_overrides),
        "billing_default_provider": billing_default_provider,
        "api_title": api_title,
        "api_version": api_version,
        "api_cors_origins": api_cors_origins,
    }


def reload_config() -> None:
    CONFIG.__dict__.update(_compute_values())


def load_envs(global_dir: str) -> None:
    """Load environment variables from a ``.env`` file and refresh ``CONFIG``."""
    from dotenv import load_dotenv

    load_dotenv(os.path.join(global_dir, ".env"))
    reload_config()


# Load once on import so downstream modules can use CONFIG immediately.
reload_config()
