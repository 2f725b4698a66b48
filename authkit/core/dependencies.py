"""Request authorization pipeline as FastAPI dependencies.

Stages run strictly in order and any of them can end the request:

    UNAUTHENTICATED -> TOKEN_EXTRACTED -> TOKEN_VALID -> PRINCIPAL_LOADED
        -> AUTHORIZED | DENIED

``get_auth_context`` covers authentication and returns a typed
``AuthContext``. ``RequirePermission`` / ``RequireRole`` / ``RequireAnyRole``
depend on it, so FastAPI always resolves authentication first.

Usage:
    @router.get("/users")
    def list_users(ctx: AuthContext = Depends(RequirePermission("users", "read"))): ...
"""

import enum
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Query, Request
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from authkit.core.exceptions import AuthenticationError, AuthorizationError
from authkit.core.permissions import has_any_role, has_permission, has_role
from authkit.core.security import AccessClaims, decode_access_token, security_scheme
from authkit.db.session import get_db
from authkit.models.user import User

logger = logging.getLogger("authkit.pipeline")


class AuthStage(str, enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    TOKEN_EXTRACTED = "token_extracted"
    TOKEN_VALID = "token_valid"
    PRINCIPAL_LOADED = "principal_loaded"
    AUTHORIZED = "authorized"
    DENIED = "denied"


@dataclass
class AuthContext:
    """The authenticated caller for one request."""

    user: User
    claims: AccessClaims
    stage: AuthStage = AuthStage.PRINCIPAL_LOADED


def _deny(stage: AuthStage, message: str, exc_type=AuthenticationError):
    logger.debug("Request denied at %s: %s", stage.value, message)
    return exc_type(message)


def get_auth_context(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme),
    token: Optional[str] = Query(None, include_in_schema=False),
    db: Session = Depends(get_db),
) -> AuthContext:
    """Authenticate the request and load the caller with roles and permissions.

    The bearer header takes precedence; ``?token=`` is only read without one.
    """
    raw = credentials.credentials if credentials else token
    if not raw:
        raise _deny(AuthStage.UNAUTHENTICATED, "No token provided")

    claims = decode_access_token(raw)
    if claims is None:
        raise _deny(AuthStage.TOKEN_EXTRACTED, "Invalid token")

    # Reload on every request so role changes and disabling apply immediately
    user = db.query(User).filter(User.id == claims.user_id).first()
    if user is None:
        raise _deny(AuthStage.TOKEN_VALID, "User not found")
    if not user.is_active:
        raise _deny(AuthStage.TOKEN_VALID, "User account is disabled")

    # Read by the request logger only
    request.state.user_id = user.id
    return AuthContext(user=user, claims=claims)


class RequirePermission:
    """Dependency admitting callers holding the exact (resource, action)."""

    def __init__(self, resource: str, action: str):
        self.resource = resource
        self.action = action

    def __call__(self, ctx: AuthContext = Depends(get_auth_context)) -> AuthContext:
        if not has_permission(ctx.user, self.resource, self.action):
            raise _deny(AuthStage.PRINCIPAL_LOADED, "Insufficient permissions", AuthorizationError)
        ctx.stage = AuthStage.AUTHORIZED
        return ctx


class RequireRole:
    """Dependency admitting callers holding the named role."""

    def __init__(self, role_name: str):
        self.role_name = role_name

    def __call__(self, ctx: AuthContext = Depends(get_auth_context)) -> AuthContext:
        if not has_role(ctx.user, self.role_name):
            raise _deny(AuthStage.PRINCIPAL_LOADED, "Insufficient role", AuthorizationError)
        ctx.stage = AuthStage.AUTHORIZED
        return ctx


class RequireAnyRole:
    """Dependency admitting callers holding at least one of the roles."""

    def __init__(self, *role_names: str):
        self.role_names = role_names

    def __call__(self, ctx: AuthContext = Depends(get_auth_context)) -> AuthContext:
        if not has_any_role(ctx.user, self.role_names):
            raise _deny(AuthStage.PRINCIPAL_LOADED, "Insufficient role", AuthorizationError)
        ctx.stage = AuthStage.AUTHORIZED
        return ctx


require_admin = RequireRole("admin")
