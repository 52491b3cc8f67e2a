"""
Authentication module for Supabase integration.

This module provides:
- JWT token validation
- Subscriber resolution from bearer credentials
"""

from typing import Any, Dict, Optional
import logging

import jwt
import base64
import binascii
from supabase import Client, create_client

from ..billing.models import Subscriber
from ..config import CONFIG


logger = logging.getLogger(__name__)

JWT_AUDIENCE = "authenticated"


class SupabaseAuthManager:
    """Resolves subscribers with Supabase Auth."""

    def __init__(self, client: Optional[Client] = None, jwt_secret: Optional[str] = None):
        """Initialize the AuthManager with Supabase client."""
        self.jwt_secret = jwt_secret if jwt_secret is not None else CONFIG.supabase_jwt_secret
        if client is None:
            supabase_url = CONFIG.supabase_url
            client_key = CONFIG.supabase_service_role_key or CONFIG.supabase_anon_key
            if not supabase_url or not client_key:
                raise ValueError("SUPABASE_URL and SUPABASE_ANON_KEY environment variables are required")
            if not CONFIG.supabase_service_role_key:
                logger.warning("SUPABASE_SERVICE_ROLE_KEY not set; falling back to anon key for auth verification")
            client = create_client(supabase_url, client_key)
        self.supabase: Client = client
        self._jwt_secret_candidates = self._prepare_jwt_secret_candidates(self.jwt_secret)

    @staticmethod
    def _prepare_jwt_secret_candidates(secret: Optional[str]) -> list:
        candidates: list = []
        if not secret:
            return candidates

        raw = secret.strip()
        if raw:
            candidates.append(raw)
            try:
                decoded = base64.b64decode(raw, validate=True)
                if decoded:
                    candidates.append(decoded)
            except (binascii.Error, ValueError):
                logger.debug("JWT secret is not base64; using raw value only")
        return candidates

    def _load_user_via_supabase(self, token: str) -> Optional[Dict[str, Any]]:
        """Fallback to Supabase SDK for token validation."""
        try:
            user = self.supabase.auth.get_user(token)
        except Exception as exc:
            logger.warning("Supabase auth get_user raised an exception: %s", exc)
            return None
        if not user or not getattr(user, "user", None):
            return None
        supa_user = user.user
        return {
            "sub": supa_user.id,
            "email": supa_user.email,
        }

    def verify_jwt_token(self, token: str) -> Optional[Dict[str, Any]]:
        """
        Verify and decode a JWT token from Supabase Auth.

        Args:
            token: The JWT token to verify

        Returns:
            Decoded token payload if valid, None if invalid
        """
        if not token:
            logger.debug("verify_jwt_token received empty token")
            return None
        for candidate in self._jwt_secret_candidates:
            try:
                payload = jwt.decode(
                    token,
                    candidate,
                    algorithms=["HS256"],
                    audience=JWT_AUDIENCE,
                )
                logger.debug("JWT decoded using configured secret candidate")
                return payload
            except jwt.InvalidTokenError:
                logger.debug("JWT decode failed for one candidate; trying next")
                continue
        logger.debug("Falling back to Supabase SDK token validation")
        result = self._load_user_via_supabase(token)
        if not result:
            logger.warning("Supabase SDK could not validate token")
        return result

    def resolve_subscriber(self, token: str) -> Optional[Subscriber]:
        """
        Resolve the subscriber a bearer token belongs to.

        Args:
            token: The JWT token

        Returns:
            Subscriber or None if the token is invalid
        """
        payload = self.verify_jwt_token(token)
        if not payload or not payload.get("sub"):
            return None
        return Subscriber(id=str(payload["sub"]), email=payload.get("email"))

    def authenticate_request_token(self, authorization_header: Optional[str]) -> Optional[Subscriber]:
        """Extract and validate the bearer token from an Authorization header."""
        if not authorization_header or not authorization_header.startswith("Bearer "):
            return None

        token = authorization_header[7:].strip()  # Remove "Bearer " prefix
        return self.resolve_subscriber(token)


AuthManager = SupabaseAuthManager


# Global auth manager instance
_auth_manager: Optional[AuthManager] = None


def get_auth_manager() -> AuthManager:
    """Get the global AuthManager instance."""
    global _auth_manager
    if _auth_manager is None:
        _auth_manager = AuthManager()
    return _auth_manager
