"""Authentication dependencies.

Bearer JWTs are issued by the platform's identity service and verified
here with the shared secret from ``settings.server``. Routes depend on one
of:

- ``get_current_principal``: any authenticated caller
- ``require_admin``: tenant administrators (and super admins)
- ``require_super_admin``: platform operators
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from infrastructure.logging import get_module_logger
from infrastructure.security import (
    ROLE_ADMIN,
    ROLE_SUPER_ADMIN,
    InvalidTokenError,
    Principal,
    principal_from_claims,
    validate_jwt_token,
)
from infrastructure.services import SettingsDep

logger = get_module_logger()
security = HTTPBearer(auto_error=False)


def get_current_principal(
    settings: SettingsDep,
    credentials: HTTPAuthorizationCredentials | None = Security(security),
) -> Principal:
    """Verify the bearer token and return the caller.

    Raises:
        HTTPException: 401 if the token is missing or invalid
    """
    if credentials is None:
        raise HTTPException(
            status_code=401,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        claims = validate_jwt_token(
            credentials.credentials,
            settings.server.SECRET_KEY,
            settings.server.JWT_ALGORITHM,
        )
        return principal_from_claims(claims)
    except InvalidTokenError as e:
        raise HTTPException(
            status_code=401,
            detail=f"Invalid token: {e}",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


PrincipalDep = Annotated[Principal, Depends(get_current_principal)]


def require_admin(principal: PrincipalDep) -> Principal:
    if not principal.has_role(ROLE_ADMIN):
        logger.warning(
            "admin_access_denied",
            user_id=principal.user_id,
            tenant_id=principal.tenant_id,
            role=principal.role,
        )
        raise HTTPException(status_code=403, detail="Admin role required")
    return principal


def require_super_admin(principal: PrincipalDep) -> Principal:
    if not principal.has_role(ROLE_SUPER_ADMIN):
        logger.warning(
            "super_admin_access_denied",
            user_id=principal.user_id,
            tenant_id=principal.tenant_id,
            role=principal.role,
        )
        raise HTTPException(status_code=403, detail="Super admin role required")
    return principal


AdminDep = Annotated[Principal, Depends(require_admin)]
SuperAdminDep = Annotated[Principal, Depends(require_super_admin)]


def require_tenant_access(principal: Principal, tenant_id: str) -> None:
    """Reject access to another tenant's data unless the caller is a super admin."""
    if principal.tenant_id != tenant_id and not principal.has_role(ROLE_SUPER_ADMIN):
        raise HTTPException(status_code=403, detail="Access to tenant denied")
