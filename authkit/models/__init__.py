"""Models package - import all models so metadata.create_all can discover them."""

from authkit.models.permission import Permission
from authkit.models.role import Role, role_permissions
from authkit.models.user import User, user_roles
from authkit.models.refresh_token import RefreshToken
from authkit.models.security_log import RequestLog, FailedLogin

__all__ = [
    "Permission", "Role", "role_permissions", "User", "user_roles",
    "RefreshToken", "RequestLog", "FailedLogin",
]
