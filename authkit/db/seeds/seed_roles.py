"""Seed default permissions and roles into the database."""

from sqlalchemy.orm import Session

from authkit.models.permission import Permission
from authkit.models.role import Role

PERMISSIONS = [
    ("users", "read", "Read users"),
    ("users", "write", "Write users"),
    ("users", "delete", "Delete users"),
    ("roles", "read", "Read roles"),
    ("roles", "write", "Write roles"),
    ("roles", "delete", "Delete roles"),
    ("permissions", "read", "Read permissions"),
    ("permissions", "write", "Write permissions"),
    ("permissions", "delete", "Delete permissions"),
    ("dashboard", "read", "Access dashboard"),
    ("menu", "dashboard", "Access dashboard menu"),
    ("menu", "admin-panel", "Access admin panel"),
    ("menu", "analytics", "Access analytics menu"),
    ("menu", "reports", "Access reports menu"),
    ("menu", "admin", "Access admin menu"),
    ("menu", "users", "Access users menu"),
    ("menu", "roles", "Access roles menu"),
    ("menu", "audit", "Access audit log menu"),
    ("menu", "billing", "Access billing menu"),
    ("menu", "support", "Access support menu"),
    ("menu", "settings", "Access settings menu"),
    ("feature", "export", "Export data"),
    ("feature", "import", "Import data"),
    ("feature", "backup", "Create backups"),
    ("feature", "maintenance", "Run maintenance tasks"),
    ("settings", "read", "Read settings"),
    ("settings", "write", "Write settings"),
]


def _manager(p: Permission) -> bool:
    return p.resource in ("users", "roles", "dashboard") or p.name in ("menu.dashboard", "menu.users", "menu.roles")


def _editor(p: Permission) -> bool:
    return p.action in ("read", "write") and p.resource != "settings"


def _viewer(p: Permission) -> bool:
    return p.action == "read" or p.name == "menu.dashboard"


def _basic(p: Permission) -> bool:
    return p.name in ("dashboard.read", "menu.dashboard")


def _support(p: Permission) -> bool:
    return p.name in ("users.read", "dashboard.read", "menu.dashboard", "menu.support")


# name -> (description, predicate selecting its permissions)
ROLES = {
    "admin": ("Administrator with full access", lambda p: True),
    "manager": ("Manager with limited administrative access", _manager),
    "editor": ("Editor with content management access", _editor),
    "viewer": ("Viewer with read-only access", _viewer),
    "moderator": ("Moderator with read access to users", _support),
    "support": ("Support staff", _support),
    "user": ("Regular user with basic access", _basic),
}


def seed_permissions(db: Session) -> None:
    """Insert default permissions if they don't already exist."""
    for resource, action, description in PERMISSIONS:
        name = f"{resource}.{action}"
        if db.query(Permission).filter(Permission.name == name).first():
            continue
        db.add(Permission(name=name, resource=resource, action=action, description=description))
        print(f"  + Permission: {name}")
    db.commit()


def seed_roles(db: Session) -> None:
    """Insert default roles and (re)assign their permission sets."""
    seed_permissions(db)
    all_permissions = db.query(Permission).all()

    for name, (description, selects) in ROLES.items():
        role = db.query(Role).filter(Role.name == name).first()
        if role is None:
            role = Role(name=name, description=description)
            db.add(role)
            print(f"  + Role: {name}")
        role.permissions = [p for p in all_permissions if selects(p)]

    db.commit()
    print("✅ Roles seeded")
