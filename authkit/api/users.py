"""User management API router."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from authkit.db.session import get_db
from authkit.core.dependencies import AuthContext, RequirePermission, RequireRole
from authkit.schemas.schemas import (
    UserOut, UserCreate, UserUpdate, AssignRolesRequest, UserListResponse, MessageResponse,
)
from authkit.services.auth_service import auth_service
from authkit.services.user_service import user_service

router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=UserListResponse)
def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    active: Optional[bool] = Query(None),
    search: Optional[str] = Query(None, max_length=100),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(RequirePermission("users", "read")),
):
    result = user_service.list_users(db, page, limit, active, search)
    return {
        "users": result["users"],
        "pagination": {"page": result["page"], "limit": result["limit"], "total": result["total"]},
    }


@router.get("/{user_id}", response_model=UserOut)
def get_user(
    user_id: str,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(RequirePermission("users", "read")),
):
    return user_service.get_user(db, user_id)


@router.post("", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def create_user(
    body: UserCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(RequirePermission("users", "write")),
):
    """Create a user with an explicit role set."""
    return auth_service.create_user(
        db, body.username, body.email, body.password,
        body.first_name, body.last_name, role_ids=body.role_ids,
    )


@router.put("/{user_id}", response_model=UserOut)
def update_user(
    user_id: str,
    body: UserUpdate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(RequirePermission("users", "write")),
):
    """Partial update. Setting is_active=false also revokes the user's sessions."""
    return user_service.update_user(db, user_id, body.model_dump(exclude_unset=True))


@router.delete("/{user_id}", response_model=MessageResponse)
def delete_user(
    user_id: str,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(RequirePermission("users", "delete")),
):
    user_service.delete_user(db, user_id, acting_user_id=ctx.user.id)
    return MessageResponse(message="User deleted successfully")


@router.post("/{user_id}/roles", response_model=UserOut)
def assign_roles(
    user_id: str,
    body: AssignRolesRequest,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(RequireRole("admin")),
):
    """Replace a user's roles (admin only)."""
    return user_service.assign_roles(db, user_id, body.role_ids)
