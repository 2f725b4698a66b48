"""Password hashing, JWT access tokens, and opaque refresh token helpers.

Access tokens are HS256 JWTs signed with ``settings.JWT_SECRET``. Verification
is stateless and returns ``None`` on any failure; the authorization pipeline
turns that into a 401.

Refresh tokens are opaque: 32 random bytes, hex encoded. Only their SHA-256
digest is stored, so a leaked table does not hand out live sessions.
"""

import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

import bcrypt
from fastapi.security import HTTPBearer
from jose import JWTError, jwt

from authkit.core.config import settings

logger = logging.getLogger("authkit.security")

JWT_ALGORITHM = "HS256"

# JWT bearer scheme; missing or non-Bearer headers yield None instead of a 403
security_scheme = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    pwd_bytes = password.encode("utf-8")
    salt = bcrypt.gensalt()
    hashed = bcrypt.hashpw(pwd_bytes, salt)
    return hashed.decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash. Malformed hashes never match."""
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        return False


# Checked against when the username does not exist so that unknown users and
# wrong passwords cost the same bcrypt round.
DUMMY_PASSWORD_HASH = hash_password("authkit-timing-equalizer")


@dataclass(frozen=True)
class AccessClaims:
    """Decoded access-token claim set."""

    user_id: str
    username: str
    email: str
    issued_at: datetime
    expires_at: datetime


def create_access_token(
    user_id: str,
    username: str,
    email: str,
    now: Optional[datetime] = None,
    expires_delta: Optional[timedelta] = None,
) -> Tuple[str, datetime]:
    """Create a signed access token; returns ``(token, expires_at)``.

    ``iat`` and ``exp`` are whole seconds derived from the same instant, so
    ``exp - iat`` is exactly the configured lifetime.
    """
    issued = (now or datetime.now(timezone.utc)).replace(microsecond=0)
    expire = issued + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    payload = {
        "sub": user_id,
        "user_id": user_id,
        "username": username,
        "email": email,
        "iat": int(issued.timestamp()),
        "exp": int(expire.timestamp()),
        "type": "access",
    }
    token = jwt.encode(payload, settings.JWT_SECRET, algorithm=JWT_ALGORITHM)
    return token, expire


def decode_access_token(token: str) -> Optional[AccessClaims]:
    """Verify signature, algorithm, and expiry. Returns ``None`` on any failure."""
    try:
        header = jwt.get_unverified_header(token)
        # Only the configured MAC algorithm is acceptable, whatever the token claims
        if header.get("alg") != JWT_ALGORITHM:
            return None
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except JWTError:
        return None

    if payload.get("type") != "access":
        return None
    try:
        return AccessClaims(
            user_id=str(payload["user_id"]),
            username=payload["username"],
            email=payload["email"],
            issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )
    except (KeyError, TypeError, ValueError):
        return None


def generate_refresh_token() -> str:
    """Return a new opaque refresh token (256 bits of entropy, hex encoded)."""
    return secrets.token_hex(32)


def hash_refresh_token(token: str) -> str:
    """SHA-256 digest used as the storage lookup key."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
