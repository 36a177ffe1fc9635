"""
Request dependencies: bearer token verification and tenant context.

Tokens are issued by the identity service and carry the tenant in a
`tenant_id` claim and the staff user in `sub`.
"""

import logging
from typing import Annotated, Any
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from scheduling.context import TenantContext
from shared.config import get_settings

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def verify_token(token: str) -> dict[str, Any]:
    """Decode and verify a bearer token, returning its claims."""
    settings = get_settings()
    try:
        return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)] = None,
) -> dict[str, Any]:
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return verify_token(credentials.credentials)


async def get_tenant_context(
    current_user: Annotated[dict, Depends(get_current_user)],
) -> TenantContext:
    """Build the TenantContext every engine call is scoped to."""
    try:
        tenant_id = UUID(str(current_user["tenant_id"]))
        user_id = UUID(str(current_user["sub"]))
    except (KeyError, ValueError):
        logger.warning("Token missing or malformed tenant_id/sub claims")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token does not identify a tenant user",
        )
    return TenantContext.for_user(tenant_id, user_id)


TenantDep = Annotated[TenantContext, Depends(get_tenant_context)]
