"""Admin / Audit API router."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func
from sqlalchemy.orm import Session

from authkit.db.base import utcnow
from authkit.db.session import get_db
from authkit.core.dependencies import AuthContext, require_admin
from authkit.schemas.schemas import RequestLogOut, FailedLoginOut, MessageResponse
from authkit.models import FailedLogin, Permission, RefreshToken, RequestLog, Role, User
from authkit.services.security_service import security_service
from authkit.services.token_service import TokenService
from authkit.services.user_service import user_service

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/request-logs")
def list_request_logs(
    user_id: Optional[str] = Query(None),
    ip: Optional[str] = Query(None),
    method: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_admin),
):
    """Query the request audit log (admin only)."""
    result = security_service.query_request_logs(db, user_id, ip, method, page, page_size)
    return {
        "logs": [RequestLogOut.model_validate(log) for log in result["logs"]],
        "total": result["total"],
        "page": result["page"],
        "page_size": result["page_size"],
    }


@router.get("/failed-logins")
def list_failed_logins(
    min_attempts: int = Query(1, ge=1),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_admin),
):
    """Per-IP failed login counters, most recent first."""
    result = security_service.query_failed_logins(db, min_attempts, page, page_size)
    return {
        "records": [FailedLoginOut.model_validate(r) for r in result["records"]],
        "total": result["total"],
        "page": result["page"],
        "page_size": result["page_size"],
    }


@router.get("/stats")
def stats(db: Session = Depends(get_db), ctx: AuthContext = Depends(require_admin)):
    now = utcnow()
    active_sessions = (
        db.query(func.count(RefreshToken.id))
        .filter(RefreshToken.is_active.is_(True), RefreshToken.expires_at > now)
        .scalar()
    )
    return {
        "users": db.query(func.count(User.id)).scalar(),
        "active_users": db.query(func.count(User.id)).filter(User.is_active.is_(True)).scalar(),
        "roles": db.query(func.count(Role.id)).scalar(),
        "permissions": db.query(func.count(Permission.id)).scalar(),
        "active_sessions": active_sessions,
        "failed_login_ips": db.query(func.count(FailedLogin.id)).scalar(),
        "request_logs": db.query(func.count(RequestLog.id)).scalar(),
    }


@router.post("/tokens/cleanup", response_model=MessageResponse)
def cleanup_tokens(db: Session = Depends(get_db), ctx: AuthContext = Depends(require_admin)):
    """Delete expired and revoked refresh tokens."""
    removed = TokenService(db).cleanup_expired()
    return MessageResponse(message="Token cleanup complete", detail={"removed": removed})


@router.post("/users/{user_id}/revoke-tokens", response_model=MessageResponse)
def revoke_user_tokens(
    user_id: str,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_admin),
):
    """Force a user to log in again on every device."""
    user = user_service.get_user(db, user_id)
    revoked = TokenService(db).revoke_all(user.id)
    return MessageResponse(message="Tokens revoked", detail={"revoked": revoked})
