"""Seed the admin user from settings."""

from sqlalchemy.orm import Session

from authkit.core.config import settings
from authkit.core.security import hash_password
from authkit.models.role import Role
from authkit.models.user import User


def seed_admin(db: Session) -> None:
    """Create the admin user if not already present."""
    admin_role = db.query(Role).filter(Role.name == "admin").first()
    if not admin_role:
        print("⚠️  admin role not found. Run seed_roles first.")
        return

    existing = db.query(User).filter(User.username == settings.ADMIN_USERNAME).first()
    if existing:
        print(f"ℹ️  Admin '{settings.ADMIN_USERNAME}' already exists, skipping.")
        return

    admin = User(
        username=settings.ADMIN_USERNAME,
        email=settings.ADMIN_EMAIL,
        hashed_password=hash_password(settings.ADMIN_PASSWORD),
        first_name="System",
        last_name="Administrator",
        is_active=True,
    )
    admin.roles = [admin_role]
    db.add(admin)
    db.commit()
    print(f"✅ Created admin: {settings.ADMIN_USERNAME}")
