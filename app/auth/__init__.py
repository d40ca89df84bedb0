"""Authentication components for the usage accounting API."""

from .dependencies import BEARER_SCHEME, get_current_user_id, require_admin
from .supabase_jwt import verify_supabase_access_token

__all__ = [
    "BEARER_SCHEME",
    "get_current_user_id",
    "require_admin",
    "verify_supabase_access_token",
]
