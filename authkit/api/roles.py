"""Role and permission management API routers."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from authkit.db.session import get_db
from authkit.core.dependencies import AuthContext, RequirePermission
from authkit.schemas.schemas import (
    RoleOut, RoleCreate, RoleUpdate,
    PermissionOut, PermissionCreate, PermissionUpdate, MessageResponse,
)
from authkit.services.role_service import role_service

router = APIRouter(prefix="/roles", tags=["roles"])
permissions_router = APIRouter(prefix="/permissions", tags=["permissions"])


@router.get("", response_model=List[RoleOut])
def list_roles(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(RequirePermission("roles", "read")),
):
    return role_service.list_roles(db)


@router.get("/{role_id}", response_model=RoleOut)
def get_role(
    role_id: str,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(RequirePermission("roles", "read")),
):
    return role_service.get_role(db, role_id)


@router.post("", response_model=RoleOut, status_code=status.HTTP_201_CREATED)
def create_role(
    body: RoleCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(RequirePermission("roles", "write")),
):
    return role_service.create_role(db, body.name, body.description, body.permission_ids)


@router.put("/{role_id}", response_model=RoleOut)
def update_role(
    role_id: str,
    body: RoleUpdate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(RequirePermission("roles", "write")),
):
    return role_service.update_role(db, role_id, body.model_dump(exclude_unset=True))


@router.delete("/{role_id}", response_model=MessageResponse)
def delete_role(
    role_id: str,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(RequirePermission("roles", "delete")),
):
    """Default roles and roles that still have members cannot be deleted."""
    role_service.delete_role(db, role_id)
    return MessageResponse(message="Role deleted successfully")


# ---- Permissions ----

@permissions_router.get("", response_model=List[PermissionOut])
def list_permissions(
    resource: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(RequirePermission("permissions", "read")),
):
    return role_service.list_permissions(db, resource)


@permissions_router.get("/{permission_id}", response_model=PermissionOut)
def get_permission(
    permission_id: str,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(RequirePermission("permissions", "read")),
):
    return role_service.get_permission(db, permission_id)


@permissions_router.post("", response_model=PermissionOut, status_code=status.HTTP_201_CREATED)
def create_permission(
    body: PermissionCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(RequirePermission("permissions", "write")),
):
    """Duplicate names or (resource, action) pairs are rejected with 409."""
    return role_service.create_permission(db, body.name, body.resource, body.action, body.description)


@permissions_router.put("/{permission_id}", response_model=PermissionOut)
def update_permission(
    permission_id: str,
    body: PermissionUpdate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(RequirePermission("permissions", "write")),
):
    return role_service.update_permission(db, permission_id, body.model_dump(exclude_unset=True))


@permissions_router.delete("/{permission_id}", response_model=MessageResponse)
def delete_permission(
    permission_id: str,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(RequirePermission("permissions", "delete")),
):
    role_service.delete_permission(db, permission_id)
    return MessageResponse(message="Permission deleted successfully")
