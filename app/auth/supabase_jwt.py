"""
Supabase JWT verification helpers.

The frontend authenticates users with Supabase and sends the access token
as `Authorization: Bearer <jwt>`. The backend verifies it with the project's
JWT secret (HS256). The user id is the `sub` claim.

Configuration:
- SUPABASE_JWT_SECRET (required): JWT secret from the Supabase project settings.
- SUPABASE_JWT_AUDIENCE (optional): expected `aud` claim, "authenticated" by default.
"""

from typing import Any, Dict

import jwt

from src.config import get_settings


def verify_supabase_access_token(token: str) -> Dict[str, Any]:
    """
    Verify a Supabase access token and return decoded claims.

    Raises jwt.PyJWTError subclasses on invalid tokens and ValueError when
    no secret is configured.
    """
    auth_settings = get_settings().auth
    if not auth_settings.is_configured:
        raise ValueError("SUPABASE_JWT_SECRET is not configured (required for JWT auth)")

    audience = auth_settings.supabase_jwt_audience or None

    return jwt.decode(
        token,
        auth_settings.supabase_jwt_secret.get_secret_value(),
        algorithms=["HS256"],
        audience=audience,
        options={"verify_aud": audience is not None, "require": ["sub", "exp"]},
    )
