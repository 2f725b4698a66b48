"""Auth API router."""

from typing import Optional

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from authkit.db.session import get_db
from authkit.core.dependencies import AuthContext, get_auth_context
from authkit.core.middleware import client_ip
from authkit.core.permissions import permission_set
from authkit.schemas.schemas import (
    LoginRequest, RegisterRequest, RefreshRequest, LogoutRequest,
    AuthResponse, TokenResponse, MeResponse, MenuResponse, MessageResponse,
)
from authkit.services.auth_service import auth_service
from authkit.services.menu_service import accessible_menu, feature_access

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(body: RegisterRequest, db: Session = Depends(get_db)):
    """Create an account with the default role and return a token pair."""
    return auth_service.register(
        db, body.username, body.email, body.password, body.first_name, body.last_name,
    )


@router.post("/login", response_model=AuthResponse)
def login(body: LoginRequest, request: Request, db: Session = Depends(get_db)):
    """Authenticate by username or email and return a token pair."""
    return auth_service.authenticate(
        db,
        body.username,
        body.password,
        ip=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )


@router.post("/refresh", response_model=TokenResponse)
def refresh(body: RefreshRequest, db: Session = Depends(get_db)):
    """Exchange a refresh token for a new access token."""
    return auth_service.refresh(db, body.refresh_token)


@router.get("/me", response_model=MeResponse)
def get_me(ctx: AuthContext = Depends(get_auth_context)):
    """Current user with roles and flattened permissions."""
    permissions = sorted(f"{resource}.{action}" for resource, action in permission_set(ctx.user))
    return {"user": ctx.user, "permissions": permissions}


@router.get("/menu", response_model=MenuResponse)
def get_menu(ctx: AuthContext = Depends(get_auth_context)):
    """Navigation entries and feature flags the caller may use."""
    return {"menus": accessible_menu(ctx.user), "features": feature_access(ctx.user)}


@router.post("/logout", response_model=MessageResponse)
def logout(
    body: Optional[LogoutRequest] = None,
    ctx: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    """Revoke the presented refresh token."""
    auth_service.logout(db, ctx.user, body.refresh_token if body else None)
    return MessageResponse(message="Logged out successfully")


@router.post("/logout-all", response_model=MessageResponse)
def logout_all(
    ctx: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    """Revoke every refresh token of the caller."""
    revoked = auth_service.logout_all(db, ctx.user)
    return MessageResponse(message="Logged out from all devices", detail={"revoked": revoked})
