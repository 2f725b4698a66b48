"""Auth service: credential checks and the login/logout flow."""

import logging
from typing import Any, Dict, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from authkit.core.config import settings
from authkit.core.exceptions import AuthenticationError, ConflictError, StorageError
from authkit.core.security import DUMMY_PASSWORD_HASH, hash_password, verify_password
from authkit.db.base import utcnow
from authkit.models.role import Role
from authkit.models.user import User
from authkit.services.security_service import security_service
from authkit.services.token_service import TokenService

logger = logging.getLogger("authkit.auth")

INVALID_CREDENTIALS = "Invalid credentials"


class AuthService:
    """Handles authentication and the token lifecycle around it."""

    @staticmethod
    def verify_credentials(db: Session, login: str, password: str) -> Optional[User]:
        """Return the user matching ``login`` (username or email) and password.

        bcrypt runs whether or not the user exists so response time does not
        reveal valid usernames. Returns None on any mismatch.
        """
        user = db.query(User).filter(
            or_(User.username == login, User.email == login)
        ).first()
        if user is None:
            verify_password(password, DUMMY_PASSWORD_HASH)
            return None
        if not verify_password(password, user.hashed_password):
            return None
        return user

    @staticmethod
    def authenticate(
        db: Session,
        login: str,
        password: str,
        ip: str,
        user_agent: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Authenticate a user and return a fresh token pair.

        Raises:
            AuthenticationError: on bad credentials or a disabled account.
        """
        user = AuthService.verify_credentials(db, login, password)
        if user is None:
            security_service.record_failed_login(db, ip, login, user_agent)
            raise AuthenticationError(INVALID_CREDENTIALS)

        if not user.is_active:
            security_service.record_failed_login(db, ip, login, user_agent)
            raise AuthenticationError("Account is disabled")

        pair = TokenService(db).issue_token_pair(user)

        user.last_login_at = utcnow()
        db.commit()
        logger.info("User %s logged in from %s", user.id, ip)

        result = pair.as_response()
        result["user"] = user
        return result

    @staticmethod
    def register(
        db: Session,
        username: str,
        email: str,
        password: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Create an account with the default role and return a token pair.

        Raises:
            ConflictError: if the username or email is taken.
        """
        user = AuthService.create_user(
            db, username, email, password, first_name, last_name,
            role_names=[settings.DEFAULT_ROLE],
        )
        pair = TokenService(db).issue_token_pair(user)
        result = pair.as_response()
        result["user"] = user
        return result

    @staticmethod
    def create_user(
        db: Session,
        username: str,
        email: str,
        password: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        role_names: Optional[list] = None,
        role_ids: Optional[list] = None,
    ) -> User:
        """Create a new user. Unknown role names or ids are skipped."""
        existing = db.query(User).filter(
            or_(User.username == username, User.email == email)
        ).first()
        if existing:
            raise ConflictError("Username or email already exists")

        user = User(
            username=username,
            email=email,
            hashed_password=hash_password(password),
            first_name=first_name,
            last_name=last_name,
            is_active=True,
        )
        roles = []
        if role_names:
            roles += db.query(Role).filter(Role.name.in_(role_names)).all()
        if role_ids:
            roles += db.query(Role).filter(Role.id.in_(role_ids)).all()
        user.roles = list({role.id: role for role in roles}.values())

        db.add(user)
        try:
            db.commit()
        except IntegrityError as exc:
            # Lost a race against a concurrent registration
            db.rollback()
            raise ConflictError("Username or email already exists") from exc
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Failed to create user %s: %s", username, exc)
            raise StorageError("Failed to create user") from exc
        db.refresh(user)
        logger.info("Created user %s (%s)", user.id, username)
        return user

    @staticmethod
    def refresh(db: Session, refresh_token: str) -> Dict[str, Any]:
        """Exchange a refresh token for a new pair."""
        return TokenService(db).refresh_access_token(refresh_token).as_response()

    @staticmethod
    def logout(db: Session, user: User, refresh_token: Optional[str] = None) -> None:
        """Revoke the presented refresh token, if it belongs to the caller."""
        if not refresh_token:
            return
        tokens = TokenService(db)
        stored = tokens.verify_refresh_token(refresh_token)
        if stored is not None and stored.user_id != user.id:
            raise AuthenticationError("Invalid or expired refresh token")
        tokens.revoke(refresh_token)

    @staticmethod
    def logout_all(db: Session, user: User) -> int:
        """Revoke every refresh token of the caller."""
        return TokenService(db).revoke_all(user.id)


auth_service = AuthService()
