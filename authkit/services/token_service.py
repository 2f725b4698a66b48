"""Token service: the access/refresh token pair lifecycle."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from authkit.core.config import settings
from authkit.core.exceptions import AuthenticationError
from authkit.core.security import (
    create_access_token, generate_refresh_token, hash_refresh_token,
)
from authkit.db.base import utcnow
from authkit.models.refresh_token import RefreshToken
from authkit.models.user import User
from authkit.services.session_store import RefreshTokenStore

logger = logging.getLogger("authkit.tokens")

INVALID_REFRESH_TOKEN = "Invalid or expired refresh token"


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str
    expires_at: datetime

    def as_response(self) -> dict:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "token_type": "bearer",
            "expires_at": int(self.expires_at.timestamp()),
        }


class TokenService:
    """Issues and validates access/refresh tokens against one DB session.

    Args:
        db: request-scoped SQLAlchemy session.
        rotate: when True, every refresh consumes the presented refresh token
            and hands out a new one. Defaults to ``REFRESH_TOKEN_ROTATION``.
    """

    def __init__(self, db: Session, rotate: Optional[bool] = None):
        self.db = db
        self.store = RefreshTokenStore(db)
        self.rotate = settings.REFRESH_TOKEN_ROTATION if rotate is None else rotate

    # ---- issuing ----

    def issue_access_token(self, user: User, now: Optional[datetime] = None):
        """Returns ``(token, expires_at)`` for a short-lived access token."""
        return create_access_token(user.id, user.username, user.email, now=now)

    def issue_refresh_token(self, user_id: str, commit: bool = True) -> str:
        """Persist a new refresh token row and return the raw token.

        With ``commit=False`` the row is only flushed into the open transaction.

        Raises:
            StorageError: if the row cannot be written.
        """
        token = generate_refresh_token()
        expires_at = utcnow() + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
        self.store.create(user_id, hash_refresh_token(token), expires_at, commit=commit)
        return token

    def issue_token_pair(self, user: User) -> TokenPair:
        access_token, expires_at = self.issue_access_token(user)
        refresh_token = self.issue_refresh_token(user.id)
        logger.debug("Issued token pair for user %s", user.id)
        return TokenPair(access_token, refresh_token, expires_at)

    # ---- validation ----

    def verify_refresh_token(self, token: str) -> Optional[RefreshToken]:
        """The active, unexpired stored row for ``token``, or None.

        Unknown, revoked, and expired tokens are indistinguishable here.
        """
        if not token:
            return None
        return self.store.find_valid(hash_refresh_token(token))

    def refresh_access_token(self, token: str) -> TokenPair:
        """Exchange a valid refresh token for a new access token.

        Raises:
            AuthenticationError: if the refresh token is not valid, or its
                owner is missing or disabled.
            StorageError: if rotation cannot be persisted.
        """
        stored = self.verify_refresh_token(token)
        if stored is None:
            raise AuthenticationError(INVALID_REFRESH_TOKEN)

        user = self.db.query(User).filter(User.id == stored.user_id).first()
        if user is None or not user.is_active:
            raise AuthenticationError(INVALID_REFRESH_TOKEN)

        if self.rotate:
            # consume and replace in one transaction; a failed write keeps the old token
            if not self.store.consume(stored.token_hash, commit=False):
                # Lost a race with another refresh of the same token
                raise AuthenticationError(INVALID_REFRESH_TOKEN)
            refresh_token = self.issue_refresh_token(user.id, commit=False)
            self.store.commit()
        else:
            refresh_token = token

        access_token, expires_at = self.issue_access_token(user)
        return TokenPair(access_token, refresh_token, expires_at)

    # ---- revocation ----

    def revoke(self, token: str) -> None:
        """Deactivate one refresh token. Idempotent."""
        if token:
            self.store.deactivate(hash_refresh_token(token))

    def revoke_all(self, user_id: str) -> int:
        """Deactivate every refresh token of a user. Idempotent."""
        count = self.store.deactivate_all(user_id)
        if count:
            logger.info("Revoked %d refresh token(s) for user %s", count, user_id)
        return count

    def cleanup_expired(self) -> int:
        """Garbage-collect expired and inactive refresh tokens."""
        removed = self.store.purge()
        logger.info("Removed %d expired or inactive refresh token(s)", removed)
        return removed
