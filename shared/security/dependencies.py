from typing import Optional

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer, APIKeyHeader

from shared.errors import Forbidden, Unauthorized
from .jwt_handler import verify_access_token
from .api_key import verify_api_key
from .identity import CurrentUser

# Defines the expected header format (Bearer <token>)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login", auto_error=False)

# Defines the expected internal service header
api_key_header = APIKeyHeader(name="X-Internal-API-Key", auto_error=False)


def _decode_user(token: str) -> Optional[CurrentUser]:
    payload = verify_access_token(token)
    if payload is None or payload.get("sub") is None:
        return None
    return CurrentUser.from_claims(payload)


async def get_current_user(request: Request, token: str = Depends(oauth2_scheme)) -> CurrentUser:
    """Dependency to validate the JWT and return the caller's identity."""
    if not token:
        raise Unauthorized()

    user = _decode_user(token)
    if user is None:
        raise Unauthorized()

    # Store in request state for downstream use (like rate limiting)
    request.state.user_id = user.id
    return user


async def get_optional_user(request: Request, token: str = Depends(oauth2_scheme)) -> Optional[CurrentUser]:
    """Like get_current_user, but guests (no token) get None.

    A token that is present but invalid is still rejected.
    """
    if not token:
        return None
    return await get_current_user(request, token)


async def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.is_admin:
        raise Forbidden("Admin access required")
    return user


async def verify_internal_api_key(api_key: str = Depends(api_key_header)) -> bool:
    """Dependency to validate service-to-service internal requests."""
    if not verify_api_key(api_key):
        raise Forbidden("Invalid or missing X-Internal-API-Key header")
    return True
