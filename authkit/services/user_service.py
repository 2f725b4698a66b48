"""User management service."""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from authkit.core.exceptions import ConflictError, NotFoundError, ValidationError
from authkit.models.role import Role
from authkit.models.user import User
from authkit.services.token_service import TokenService

logger = logging.getLogger("authkit.users")


class UserService:
    """CRUD over users. Disabling or deleting a user ends all their sessions."""

    @staticmethod
    def get_user(db: Session, user_id: str) -> User:
        user = db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFoundError("User not found")
        return user

    @staticmethod
    def list_users(
        db: Session,
        page: int = 1,
        limit: int = 10,
        active: Optional[bool] = None,
        search: Optional[str] = None,
    ) -> Dict[str, Any]:
        """List users with optional active filter and username/email search."""
        query = db.query(User)
        if active is not None:
            query = query.filter(User.is_active.is_(active))
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(User.username.ilike(pattern), User.email.ilike(pattern)))

        total = query.count()
        users = (
            query.order_by(User.created_at.desc(), User.username)
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return {"users": users, "page": page, "limit": limit, "total": total}

    @staticmethod
    def _roles_by_ids(db: Session, role_ids: List[str]) -> List[Role]:
        roles = db.query(Role).filter(Role.id.in_(role_ids)).all()
        if len(roles) != len(set(role_ids)):
            raise ValidationError("Invalid role IDs")
        return roles

    @staticmethod
    def update_user(db: Session, user_id: str, changes: Dict[str, Any]) -> User:
        """Apply a partial update. ``role_ids`` replaces the role set."""
        user = UserService.get_user(db, user_id)

        for field in ("username", "email"):
            value = changes.get(field)
            if value and value != getattr(user, field):
                clash = db.query(User).filter(
                    getattr(User, field) == value, User.id != user.id,
                ).first()
                if clash:
                    raise ConflictError("Username or email already exists")
                setattr(user, field, value)

        for field in ("first_name", "last_name"):
            if changes.get(field) is not None:
                setattr(user, field, changes[field])

        deactivated = False
        if changes.get("is_active") is not None:
            deactivated = user.is_active and not changes["is_active"]
            user.is_active = changes["is_active"]

        if changes.get("role_ids") is not None:
            user.roles = UserService._roles_by_ids(db, changes["role_ids"])

        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            raise ConflictError("Username or email already exists") from exc

        if deactivated:
            TokenService(db).revoke_all(user.id)
            logger.info("User %s disabled; sessions revoked", user.id)
        db.refresh(user)
        return user

    @staticmethod
    def assign_roles(db: Session, user_id: str, role_ids: List[str]) -> User:
        """Replace the user's roles with exactly ``role_ids``."""
        user = UserService.get_user(db, user_id)
        user.roles = UserService._roles_by_ids(db, role_ids)
        db.commit()
        db.refresh(user)
        logger.info("Assigned roles %s to user %s", [r.name for r in user.roles], user.id)
        return user

    @staticmethod
    def delete_user(db: Session, user_id: str, acting_user_id: str) -> None:
        """Delete a user and (by cascade) their refresh tokens."""
        user = UserService.get_user(db, user_id)
        if user.id == acting_user_id:
            raise ValidationError("Cannot delete your own account")
        db.delete(user)
        db.commit()
        logger.info("Deleted user %s", user_id)


user_service = UserService()
