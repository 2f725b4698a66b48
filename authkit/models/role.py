"""Role model for RBAC."""

import uuid

from sqlalchemy import Column, String, DateTime, ForeignKey, Table, func
from sqlalchemy.orm import relationship
from authkit.db.base import Base

role_permissions = Table(
    "role_permissions",
    Base.metadata,
    Column("role_id", String(36), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("permission_id", String(36), ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
    Column("created_at", DateTime, server_default=func.now(), nullable=False),
)


class Role(Base):
    """Named, shared bundle of permissions."""
    __tablename__ = "roles"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(50), unique=True, nullable=False, index=True)
    description = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    permissions = relationship(
        "Permission", secondary=role_permissions, back_populates="roles", lazy="selectin",
    )
    users = relationship("User", secondary="user_roles", back_populates="roles")
