"""
Billsync Application Package

This package contains the subscription reconciliation service:
- api: FastAPI application and billing routes
- auth: Subscriber resolution via Supabase Auth
- billing: Checkout, subscription management and webhook reconciliation
- db: Supabase-backed customer and subscription records
- tests: Test suites
"""
