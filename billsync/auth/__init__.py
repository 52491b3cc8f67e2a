"""
Authentication

This module provides:
- Subscriber resolution via Supabase Auth
- JWT token validation
"""

from .manager import AuthManager, SupabaseAuthManager, get_auth_manager

__all__ = [
    'AuthManager',
    'SupabaseAuthManager',
    'get_auth_manager',
]
