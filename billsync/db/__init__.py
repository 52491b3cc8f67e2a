"""
Database module for billing state.

This module provides:
- Supabase client construction
- Stripe customer mapping persistence (soft-delete aware)
- Subscription record reads and writes keyed by provider subscription id
"""

from .client import DatabaseClient, SupabaseDatabaseClient, get_database_client

__all__ = [
    "DatabaseClient",
    "SupabaseDatabaseClient",
    "get_database_client",
]
