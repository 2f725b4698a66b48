"""Navigation menu and feature flags filtered by the caller's permissions."""

from typing import Any, Dict, List

from authkit.core.permissions import has_permission
from authkit.models.user import User

# Each item is gated by a ("menu", <action>) permission.
MENU_TREE: List[Dict[str, Any]] = [
    {"name": "dashboard", "label": "Dashboard", "icon": "dashboard", "path": "/dashboard"},
    {"name": "admin-panel", "label": "Admin Panel", "icon": "admin_panel_settings", "path": "/admin"},
    {"name": "analytics", "label": "Analytics", "icon": "analytics", "path": "/analytics"},
    {"name": "reports", "label": "Reports", "icon": "report", "path": "/reports"},
    {
        "name": "admin",
        "label": "Administration",
        "icon": "admin_panel_settings",
        "path": "/admin",
        "children": [
            {"name": "users", "label": "User Management", "icon": "people", "path": "/admin/users"},
            {"name": "roles", "label": "Role Management", "icon": "security", "path": "/admin/roles"},
            {"name": "audit", "label": "Audit Logs", "icon": "history", "path": "/admin/audit"},
        ],
    },
    {"name": "billing", "label": "Billing", "icon": "receipt", "path": "/billing"},
    {"name": "support", "label": "Support", "icon": "support_agent", "path": "/support"},
    {"name": "settings", "label": "Settings", "icon": "settings", "path": "/settings"},
]

FEATURES = ("export", "import", "backup", "maintenance")


def accessible_menu(user: User, items: List[Dict[str, Any]] = MENU_TREE) -> List[Dict[str, Any]]:
    """Menu items the user may see; a hidden parent hides its children."""
    visible = []
    for item in items:
        if not has_permission(user, "menu", item["name"]):
            continue
        entry = {key: value for key, value in item.items() if key != "children"}
        entry["permission"] = f"menu.{item['name']}"
        if item.get("children"):
            entry["children"] = accessible_menu(user, item["children"])
        visible.append(entry)
    return visible


def feature_access(user: User) -> Dict[str, bool]:
    return {feature: has_permission(user, "feature", feature) for feature in FEATURES}
