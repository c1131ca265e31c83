from .jwt_handler import create_access_token, verify_access_token
from .api_key import verify_api_key
from .identity import CurrentUser
from .dependencies import get_current_user, get_optional_user, require_admin, verify_internal_api_key
from .rate_limiter import limiter, user_id_or_ip, ORDER_RATE_LIMIT

__all__ = [
    "create_access_token",
    "verify_access_token",
    "verify_api_key",
    "CurrentUser",
    "get_current_user",
    "get_optional_user",
    "require_admin",
    "verify_internal_api_key",
    "limiter",
    "user_id_or_ip",
    "ORDER_RATE_LIMIT"
]
