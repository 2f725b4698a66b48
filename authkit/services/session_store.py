"""Refresh-token session store backed by the ``refresh_tokens`` table.

Writes commit immediately unless called with ``commit=False``; those are
only flushed, and the caller finishes the unit of work with ``commit()``.
SQLAlchemy failures are rolled back and re-raised as ``StorageError`` so
callers see one error type for persistence problems.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from authkit.core.exceptions import StorageError
from authkit.db.base import utcnow
from authkit.models.refresh_token import RefreshToken

logger = logging.getLogger("authkit.session_store")


class RefreshTokenStore:
    """Create / query / update / delete operations over refresh-token rows."""

    def __init__(self, db: Session):
        self.db = db

    def _fail(self, operation: str, exc: SQLAlchemyError) -> StorageError:
        self.db.rollback()
        logger.error("refresh token %s failed: %s", operation, exc)
        return StorageError(f"Failed to {operation} refresh token")

    def _write(self, commit: bool) -> None:
        if commit:
            self.db.commit()
        else:
            self.db.flush()

    def commit(self) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            raise self._fail("commit", exc) from exc

    def create(
        self, user_id: str, token_hash: str, expires_at: datetime, commit: bool = True,
    ) -> RefreshToken:
        row = RefreshToken(
            user_id=user_id,
            token_hash=token_hash,
            expires_at=expires_at,
            is_active=True,
        )
        try:
            self.db.add(row)
            self._write(commit)
        except SQLAlchemyError as exc:
            raise self._fail("persist", exc) from exc
        return row

    def find_valid(self, token_hash: str, now: Optional[datetime] = None) -> Optional[RefreshToken]:
        """Active, unexpired row for this hash, or None."""
        now = now or utcnow()
        try:
            return self.db.query(RefreshToken).filter(
                RefreshToken.token_hash == token_hash,
                RefreshToken.is_active.is_(True),
                RefreshToken.expires_at > now,
            ).first()
        except SQLAlchemyError as exc:
            raise self._fail("look up", exc) from exc

    def consume(self, token_hash: str, now: Optional[datetime] = None, commit: bool = True) -> bool:
        """Atomically deactivate one valid row; True only for the caller that won."""
        now = now or utcnow()
        try:
            updated = self.db.query(RefreshToken).filter(
                RefreshToken.token_hash == token_hash,
                RefreshToken.is_active.is_(True),
                RefreshToken.expires_at > now,
            ).update({"is_active": False, "revoked_at": now}, synchronize_session=False)
            self._write(commit)
        except SQLAlchemyError as exc:
            raise self._fail("consume", exc) from exc
        return updated == 1

    def deactivate(self, token_hash: str) -> int:
        """Mark one row inactive. Already-inactive or unknown tokens are a no-op."""
        try:
            updated = self.db.query(RefreshToken).filter(
                RefreshToken.token_hash == token_hash,
                RefreshToken.is_active.is_(True),
            ).update({"is_active": False, "revoked_at": utcnow()}, synchronize_session=False)
            self.db.commit()
        except SQLAlchemyError as exc:
            raise self._fail("revoke", exc) from exc
        return updated

    def deactivate_all(self, user_id: str) -> int:
        """Mark every active row of a user inactive."""
        try:
            updated = self.db.query(RefreshToken).filter(
                RefreshToken.user_id == user_id,
                RefreshToken.is_active.is_(True),
            ).update({"is_active": False, "revoked_at": utcnow()}, synchronize_session=False)
            self.db.commit()
        except SQLAlchemyError as exc:
            raise self._fail("revoke all", exc) from exc
        return updated

    def purge(self, now: Optional[datetime] = None) -> int:
        """Delete expired or inactive rows; returns how many were removed."""
        now = now or utcnow()
        try:
            deleted = self.db.query(RefreshToken).filter(
                or_(RefreshToken.expires_at < now, RefreshToken.is_active.is_(False)),
            ).delete(synchronize_session=False)
            self.db.commit()
        except SQLAlchemyError as exc:
            raise self._fail("purge", exc) from exc
        return deleted
