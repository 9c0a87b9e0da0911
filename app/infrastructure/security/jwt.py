"""Bearer JWT validation and caller principal extraction.

Tokens are issued elsewhere; this module only verifies them and maps the
claims the engine relies on (subject, tenant, role) onto a Principal.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from jwt import PyJWTError, decode

from infrastructure.logging import get_module_logger

logger = get_module_logger()

ROLE_USER = "user"
ROLE_ADMIN = "admin"
ROLE_SUPER_ADMIN = "super_admin"

_ROLE_RANK = {ROLE_USER: 0, ROLE_ADMIN: 1, ROLE_SUPER_ADMIN: 2}


class InvalidTokenError(Exception):
    """Raised when a bearer token cannot be verified."""


@dataclass(frozen=True)
class Principal:
    """Authenticated caller.

    Attributes:
        user_id: Subject claim
        tenant_id: Tenant the caller belongs to
        role: One of user, admin, super_admin
        email: Optional email claim
    """

    user_id: str
    tenant_id: str
    role: str = ROLE_USER
    email: Optional[str] = None

    def has_role(self, role: str) -> bool:
        """True if the caller's role is at least ``role``."""
        return _ROLE_RANK.get(self.role, -1) >= _ROLE_RANK[role]


def validate_jwt_token(
    token: str, secret: Optional[str], algorithm: str = "HS256"
) -> Dict[str, Any]:
    """Verify a bearer token and return its claims.

    Args:
        token: Encoded JWT
        secret: Shared signing secret
        algorithm: Expected signing algorithm

    Returns:
        The decoded and verified JWT payload

    Raises:
        InvalidTokenError: If no secret is configured or verification fails
    """
    if not secret:
        logger.error("jwt_secret_not_configured")
        raise InvalidTokenError("Token verification is not configured")
    try:
        return decode(
            token,
            secret,
            algorithms=[algorithm],
            options={"require": ["sub", "exp"]},
        )
    except PyJWTError as e:
        logger.warning("jwt_validation_failed", error=str(e))
        raise InvalidTokenError(str(e)) from e


def principal_from_claims(claims: Dict[str, Any]) -> Principal:
    """Build a Principal from verified claims.

    Raises:
        InvalidTokenError: If the tenant claim is missing or the role unknown
    """
    tenant_id = claims.get("tenant_id")
    if not tenant_id:
        raise InvalidTokenError("Token has no tenant_id claim")
    role = claims.get("role", ROLE_USER)
    if role not in _ROLE_RANK:
        raise InvalidTokenError(f"Unknown role: {role}")
    return Principal(
        user_id=str(claims["sub"]).split("/")[-1],
        tenant_id=str(tenant_id),
        role=role,
        email=claims.get("email"),
    )
