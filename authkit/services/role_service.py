"""Role and permission management."""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from authkit.core.config import settings
from authkit.core.exceptions import ConflictError, NotFoundError, ValidationError
from authkit.models.permission import Permission
from authkit.models.role import Role
from authkit.models.user import User, user_roles

logger = logging.getLogger("authkit.roles")


class RoleService:
    """CRUD over roles and permissions."""

    # ---- roles ----

    @staticmethod
    def list_roles(db: Session) -> List[Role]:
        return db.query(Role).order_by(Role.name).all()

    @staticmethod
    def get_role(db: Session, role_id: str) -> Role:
        role = db.query(Role).filter(Role.id == role_id).first()
        if not role:
            raise NotFoundError("Role not found")
        return role

    @staticmethod
    def _permissions_by_ids(db: Session, permission_ids: List[str]) -> List[Permission]:
        permissions = db.query(Permission).filter(Permission.id.in_(permission_ids)).all()
        if len(permissions) != len(set(permission_ids)):
            raise ValidationError("Invalid permission IDs")
        return permissions

    @staticmethod
    def create_role(
        db: Session,
        name: str,
        description: Optional[str] = None,
        permission_ids: Optional[List[str]] = None,
    ) -> Role:
        if db.query(Role).filter(Role.name == name).first():
            raise ConflictError("Role name already exists")

        role = Role(name=name, description=description)
        if permission_ids:
            role.permissions = RoleService._permissions_by_ids(db, permission_ids)
        db.add(role)
        db.commit()
        db.refresh(role)
        logger.info("Created role %s", name)
        return role

    @staticmethod
    def update_role(db: Session, role_id: str, changes: Dict[str, Any]) -> Role:
        role = RoleService.get_role(db, role_id)

        name = changes.get("name")
        if name and name != role.name:
            if role.name in settings.PROTECTED_ROLES:
                raise ValidationError("Cannot rename default role")
            if db.query(Role).filter(Role.name == name).first():
                raise ConflictError("Role name already exists")
            role.name = name
        if changes.get("description") is not None:
            role.description = changes["description"]
        if changes.get("permission_ids") is not None:
            role.permissions = RoleService._permissions_by_ids(db, changes["permission_ids"])

        db.commit()
        db.refresh(role)
        return role

    @staticmethod
    def delete_role(db: Session, role_id: str) -> None:
        """Delete a role unless it is a default role or still assigned."""
        role = RoleService.get_role(db, role_id)
        if role.name in settings.PROTECTED_ROLES:
            raise ValidationError("Cannot delete default role")

        assigned = (
            db.query(User)
            .join(user_roles, User.id == user_roles.c.user_id)
            .filter(user_roles.c.role_id == role.id)
            .count()
        )
        if assigned:
            raise ValidationError("Cannot delete role with assigned users")

        db.delete(role)
        db.commit()
        logger.info("Deleted role %s", role.name)

    # ---- permissions ----

    @staticmethod
    def list_permissions(db: Session, resource: Optional[str] = None) -> List[Permission]:
        query = db.query(Permission)
        if resource:
            query = query.filter(Permission.resource == resource)
        return query.order_by(Permission.resource, Permission.action).all()

    @staticmethod
    def get_permission(db: Session, permission_id: str) -> Permission:
        permission = db.query(Permission).filter(Permission.id == permission_id).first()
        if not permission:
            raise NotFoundError("Permission not found")
        return permission

    @staticmethod
    def _ensure_unique_permission(
        db: Session, name: str, resource: str, action: str, exclude_id: Optional[str] = None,
    ) -> None:
        query = db.query(Permission).filter(
            or_(
                Permission.name == name,
                and_(Permission.resource == resource, Permission.action == action),
            )
        )
        if exclude_id:
            query = query.filter(Permission.id != exclude_id)
        if query.first():
            raise ConflictError("Permission already exists")

    @staticmethod
    def create_permission(
        db: Session, name: str, resource: str, action: str, description: Optional[str] = None,
    ) -> Permission:
        RoleService._ensure_unique_permission(db, name, resource, action)
        permission = Permission(name=name, resource=resource, action=action, description=description)
        db.add(permission)
        db.commit()
        db.refresh(permission)
        return permission

    @staticmethod
    def update_permission(db: Session, permission_id: str, changes: Dict[str, Any]) -> Permission:
        permission = RoleService.get_permission(db, permission_id)
        name = changes.get("name") or permission.name
        resource = changes.get("resource") or permission.resource
        action = changes.get("action") or permission.action
        RoleService._ensure_unique_permission(db, name, resource, action, exclude_id=permission.id)

        permission.name = name
        permission.resource = resource
        permission.action = action
        if changes.get("description") is not None:
            permission.description = changes["description"]
        db.commit()
        db.refresh(permission)
        return permission

    @staticmethod
    def delete_permission(db: Session, permission_id: str) -> None:
        permission = RoleService.get_permission(db, permission_id)
        db.delete(permission)
        db.commit()


role_service = RoleService()
