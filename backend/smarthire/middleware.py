from fastapi import Depends, Request, HTTPException, status
from typing import Optional
import logging

from smarthire.auth import decode_access_token
from smarthire.context import AppContext, get_context
from smarthire.models import Principal, UserRole

logger = logging.getLogger(__name__)


def _bearer_token(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header.split(" ", 1)[1]
    # EventSource cannot set headers; streams pass the token as a query param
    return request.query_params.get("token")


async def get_current_user(request: Request, ctx: AppContext = Depends(get_context)) -> Optional[Principal]:
    """Extract and validate current user from JWT token."""
    token = _bearer_token(request)
    if not token:
        return None

    payload = decode_access_token(token, ctx.settings)
    if not payload:
        return None

    tenant_id = payload.get("tenant_id") or payload.get("sub")
    if not tenant_id:
        return None

    try:
        role = UserRole(payload.get("role") or UserRole.RECRUITER.value)
    except ValueError:
        role = UserRole.RECRUITER
    return Principal(tenant_id=str(tenant_id), role=role, email=payload.get("email"))


async def require_auth(user: Optional[Principal] = Depends(get_current_user)) -> Principal:
    """Require valid authentication."""
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


async def admin_route_guard(request: Request, user: Principal = Depends(require_auth)) -> Principal:
    """Guard for operator-only routes."""
    if not user.is_operator:
        logger.warning(f"Non-admin {user.tenant_id} denied access to {request.url.path}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return user
