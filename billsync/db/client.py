"""
Database client for billing records.
Handles the Stripe customer mapping and the subscription projection tables.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from supabase import Client, create_client

from ..billing.errors import DuplicateRecordError, PersistenceError
from ..billing.models import (
    ENTITLED_STATUSES,
    CustomerRecord,
    SubscriptionRecord,
    SubscriptionStatus,
)
from ..config import CONFIG

logger = logging.getLogger(__name__)

CUSTOMERS_TABLE = "stripe_customers"
SUBSCRIPTIONS_TABLE = "subscriptions"
UNIQUE_VIOLATION = "23505"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _first(result: Any) -> Optional[Dict[str, Any]]:
    data = getattr(result, "data", None) if result is not None else None
    if isinstance(data, list):
        return data[0] if data else None
    if isinstance(data, dict):
        return data
    return None


def _is_unique_violation(exc: Exception) -> bool:
    if getattr(exc, "code", None) == UNIQUE_VIOLATION:
        return True
    return "duplicate key" in str(exc).lower()


class SupabaseDatabaseClient:
    """Database client for Supabase operations.

    Every failure is raised as ``PersistenceError`` so callers can decide
    whether a write is fatal, compensated or merely logged.
    """

    def __init__(self, client: Optional[Client] = None):
        if client is None:
            supabase_url = getattr(CONFIG, "supabase_url", None)
            # Prefer service role key to bypass RLS for server-side operations
            supabase_key = getattr(CONFIG, "supabase_service_role_key", None) or getattr(
                CONFIG, "supabase_anon_key", None
            )
            if not supabase_url or not supabase_key:
                raise ValueError(
                    "SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY (or SUPABASE_ANON_KEY) environment variables are required"
                )
            if not getattr(CONFIG, "supabase_service_role_key", None):
                logger.warning("SUPABASE_SERVICE_ROLE_KEY not set; billing writes may be blocked by RLS")
            client = create_client(supabase_url, supabase_key)
        self.client = client

    # ------------------------------------------------------------------
    # Customer mappings
    # ------------------------------------------------------------------
    def get_live_customer(self, user_id: str) -> Optional[CustomerRecord]:
        try:
            result = (
                self.client.table(CUSTOMERS_TABLE)
                .select("*")
                .eq("user_id", user_id)
                .is_("deleted_at", "null")
                .limit(1)
                .execute()
            )
        except Exception as exc:
            logger.error("Error fetching customer mapping for user %s: %s", user_id, exc)
            raise PersistenceError("Failed to fetch customer information") from exc
        record = _first(result)
        return CustomerRecord.from_record(record) if record else None

    def get_live_customer_by_customer_id(self, customer_id: str) -> Optional[CustomerRecord]:
        if not customer_id:
            return None
        try:
            result = (
                self.client.table(CUSTOMERS_TABLE)
                .select("*")
                .eq("customer_id", customer_id)
                .is_("deleted_at", "null")
                .limit(1)
                .execute()
            )
        except Exception as exc:
            logger.error("Error fetching customer mapping for customer %s: %s", customer_id, exc)
            raise PersistenceError("Failed to fetch customer information") from exc
        record = _first(result)
        return CustomerRecord.from_record(record) if record else None

    def insert_customer(self, user_id: str, customer_id: str) -> CustomerRecord:
        body = {"user_id": user_id, "customer_id": customer_id}
        try:
            result = self.client.table(CUSTOMERS_TABLE).insert(body).execute()
        except Exception as exc:
            if _is_unique_violation(exc):
                raise DuplicateRecordError(f"Live customer mapping already exists for user {user_id}") from exc
            logger.error("Error saving customer mapping for user %s: %s", user_id, exc)
            raise PersistenceError("Failed to create customer mapping") from exc
        record = _first(result)
        return CustomerRecord.from_record(record) if record else CustomerRecord(user_id, customer_id)

    def soft_delete_customer(self, user_id: str, customer_id: str) -> None:
        try:
            (
                self.client.table(CUSTOMERS_TABLE)
                .update({"deleted_at": _now_iso()})
                .eq("user_id", user_id)
                .eq("customer_id", customer_id)
                .is_("deleted_at", "null")
                .execute()
            )
        except Exception as exc:
            logger.error("Error soft-deleting customer %s for user %s: %s", customer_id, user_id, exc)
            raise PersistenceError("Failed to retire stale customer mapping") from exc

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------
    def get_subscription(self, subscription_id: str) -> Optional[SubscriptionRecord]:
        if not subscription_id:
            return None
        try:
            result = (
                self.client.table(SUBSCRIPTIONS_TABLE)
                .select("*")
                .eq("stripe_subscription_id", subscription_id)
                .limit(1)
                .execute()
            )
        except Exception as exc:
            logger.error("Error fetching subscription %s: %s", subscription_id, exc)
            raise PersistenceError("Failed to fetch subscription") from exc
        record = _first(result)
        return SubscriptionRecord.from_record(record) if record else None

    def get_subscription_for_user(self, subscription_id: str, user_id: str) -> Optional[SubscriptionRecord]:
        if not subscription_id or not user_id:
            return None
        try:
            result = (
                self.client.table(SUBSCRIPTIONS_TABLE)
                .select("*")
                .eq("stripe_subscription_id", subscription_id)
                .eq("user_id", user_id)
                .limit(1)
                .execute()
            )
        except Exception as exc:
            logger.error("Error fetching subscription %s for user %s: %s", subscription_id, user_id, exc)
            raise PersistenceError("Failed to fetch subscription") from exc
        record = _first(result)
        return SubscriptionRecord.from_record(record) if record else None

    def get_active_subscription(self, user_id: str) -> Optional[SubscriptionRecord]:
        try:
            result = (
                self.client.table(SUBSCRIPTIONS_TABLE)
                .select("*")
                .eq("user_id", user_id)
                .in_("status", list(ENTITLED_STATUSES))
                .order("created_at", desc=True)
                .limit(1)
                .execute()
            )
        except Exception as exc:
            logger.error("Error fetching active subscription for user %s: %s", user_id, exc)
            raise PersistenceError("Failed to fetch subscription") from exc
        record = _first(result)
        return SubscriptionRecord.from_record(record) if record else None

    def upsert_subscription(self, subscription_id: str, fields: Dict[str, Any]) -> Optional[SubscriptionRecord]:
        body = dict(fields)
        body["stripe_subscription_id"] = subscription_id
        body["updated_at"] = _now_iso()
        try:
            result = (
                self.client.table(SUBSCRIPTIONS_TABLE)
                .upsert(body, on_conflict="stripe_subscription_id")
                .execute()
            )
        except Exception as exc:
            if _is_unique_violation(exc):
                raise DuplicateRecordError(f"Conflicting subscription record for {subscription_id}") from exc
            logger.error("Error upserting subscription %s: %s", subscription_id, exc)
            raise PersistenceError("Failed to save subscription") from exc
        record = _first(result)
        return SubscriptionRecord.from_record(record) if record else None

    def update_subscription(self, subscription_id: str, updates: Dict[str, Any]) -> Optional[SubscriptionRecord]:
        body = dict(updates)
        body["updated_at"] = _now_iso()
        try:
            result = (
                self.client.table(SUBSCRIPTIONS_TABLE)
                .update(body)
                .eq("stripe_subscription_id", subscription_id)
                .execute()
            )
        except Exception as exc:
            if _is_unique_violation(exc):
                raise DuplicateRecordError(f"Conflicting subscription record for {subscription_id}") from exc
            logger.error("Error updating subscription %s: %s", subscription_id, exc)
            raise PersistenceError("Failed to update subscription") from exc
        record = _first(result)
        return SubscriptionRecord.from_record(record) if record else None

    def cancel_other_subscriptions(self, user_id: str, keep_subscription_id: str) -> List[str]:
        """Mark every other live subscription of ``user_id`` as canceled."""

        live_statuses = list(ENTITLED_STATUSES) + [SubscriptionStatus.PAST_DUE.value]
        try:
            result = (
                self.client.table(SUBSCRIPTIONS_TABLE)
                .update({"status": SubscriptionStatus.CANCELED.value, "updated_at": _now_iso()})
                .eq("user_id", user_id)
                .in_("status", live_statuses)
                .neq("stripe_subscription_id", keep_subscription_id)
                .execute()
            )
        except Exception as exc:
            logger.error("Error canceling superseded subscriptions for user %s: %s", user_id, exc)
            raise PersistenceError("Failed to cancel superseded subscriptions") from exc
        rows = getattr(result, "data", None) or []
        return [str(row.get("stripe_subscription_id")) for row in rows if isinstance(row, dict)]


# Global database client instance
_database_client: Optional[SupabaseDatabaseClient] = None


def get_database_client() -> SupabaseDatabaseClient:
    """Get the process-wide database client instance."""
    global _database_client
    if _database_client is None:
        _database_client = SupabaseDatabaseClient()
    return _database_client


# Simple alias for readability
DatabaseClient = SupabaseDatabaseClient
