"""
FastAPI dependencies that resolve the calling user.

Security Considerations:
- Tokens are verified on every request; nothing is cached per token
- DEV_MODE accepts an X-User-ID header instead of a token and must never
  be enabled in production
- Failed authentication attempts are logged without the token itself
"""

import logging
from typing import Optional

import jwt
from fastapi import Depends, Header, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.config import get_settings
from src.usage import get_usage_storage
from src.utils.logging import set_request_context

from ..exceptions import AuthenticationError, AuthorizationError, ErrorCode
from .supabase_jwt import verify_supabase_access_token

logger = logging.getLogger(__name__)

BEARER_SCHEME = HTTPBearer(auto_error=False)


def _client_host(request: Request) -> str:
    return request.client.host if request.client else "unknown"


async def get_current_user_id(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(BEARER_SCHEME),
    x_user_id: Optional[str] = Header(default=None, alias="X-User-ID"),
) -> str:
    """
    Resolve the authenticated user's id.

    Returns:
        The Supabase user id (`sub` claim).

    Raises:
        AuthenticationError: If the token is missing, expired or invalid.
    """
    settings = get_settings()

    if credentials is None:
        if settings.is_dev_mode and x_user_id:
            logger.debug(f"DEV_MODE: using X-User-ID {x_user_id[:8]}...")
            return _bind_user(request, x_user_id)

        logger.warning(f"Missing bearer token in request from {_client_host(request)}")
        raise AuthenticationError("Authentication required")

    try:
        claims = verify_supabase_access_token(credentials.credentials)
    except jwt.ExpiredSignatureError:
        logger.warning(f"Expired token from {_client_host(request)}")
        raise AuthenticationError("Session expired", error_code=ErrorCode.EXPIRED_TOKEN)
    except (jwt.PyJWTError, ValueError) as e:
        logger.warning(f"Invalid token from {_client_host(request)}: {type(e).__name__}")
        raise AuthenticationError(
            "Invalid credentials",
            error_code=ErrorCode.INVALID_TOKEN,
            internal_message=str(e),
        )

    return _bind_user(request, claims["sub"])


def _bind_user(request: Request, user_id: str) -> str:
    request.state.user_id = user_id
    set_request_context(user_id=user_id)
    return user_id


async def require_admin(user_id: str = Depends(get_current_user_id)) -> str:
    """
    Allow the request only for admin users.

    Raises:
        AuthorizationError: If the user is unknown or not an admin.
    """
    user = await get_usage_storage().get_user(user_id)
    if user is None or not user.is_unlimited:
        logger.warning(f"Admin access denied for user {user_id[:8]}...")
        raise AuthorizationError(
            "Admin access required",
            required_permission="admin",
            error_code=ErrorCode.ADMIN_REQUIRED,
        )
    return user_id
