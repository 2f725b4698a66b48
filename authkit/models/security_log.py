"""Request log and failed-login models for security monitoring."""

import uuid

from sqlalchemy import Column, Integer, String, DateTime, func
from authkit.db.base import Base


class RequestLog(Base):
    """Append-only record of handled requests and security escalations.

    Escalations use method "SECURITY" and path "/security/suspicious-activity".
    """
    __tablename__ = "request_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), nullable=True, index=True)
    ip = Column(String(45), nullable=False, index=True)
    method = Column(String(10), nullable=False)
    path = Column(String(500), nullable=False)
    user_agent = Column(String(500), nullable=True)
    status = Column(Integer, nullable=True)
    duration_ms = Column(Integer, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False, index=True)


class FailedLogin(Base):
    """Per-IP failed login counter."""
    __tablename__ = "failed_logins"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    ip = Column(String(45), unique=True, nullable=False, index=True)
    username = Column(String(255), nullable=True)
    user_agent = Column(String(500), nullable=True)
    attempts = Column(Integer, default=1, nullable=False)
    last_try = Column(DateTime, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
