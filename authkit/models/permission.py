"""Permission model for RBAC."""

import uuid

from sqlalchemy import Column, String, DateTime, UniqueConstraint, func
from sqlalchemy.orm import relationship
from authkit.db.base import Base


class Permission(Base):
    """Atomic (resource, action) authorization unit."""
    __tablename__ = "permissions"
    __table_args__ = (
        UniqueConstraint("resource", "action", name="uq_permissions_resource_action"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(100), unique=True, nullable=False, index=True)  # e.g. "users.read"
    resource = Column(String(50), nullable=False)
    action = Column(String(50), nullable=False)
    description = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    roles = relationship("Role", secondary="role_permissions", back_populates="permissions")
