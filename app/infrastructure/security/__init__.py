"""Infrastructure security - bearer JWT validation.

Exports:
    Principal: Authenticated caller (user, tenant, role)
    validate_jwt_token: Verify a token and return its claims
    principal_from_claims: Map verified claims onto a Principal
"""

from infrastructure.security.jwt import (
    ROLE_ADMIN,
    ROLE_SUPER_ADMIN,
    ROLE_USER,
    InvalidTokenError,
    Principal,
    principal_from_claims,
    validate_jwt_token,
)

__all__ = [
    "ROLE_ADMIN",
    "ROLE_SUPER_ADMIN",
    "ROLE_USER",
    "InvalidTokenError",
    "Principal",
    "principal_from_claims",
    "validate_jwt_token",
]
