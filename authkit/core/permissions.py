"""Permission resolver: pure checks over an already-loaded user.

No I/O happens here. The caller is responsible for loading ``user.roles``
and each ``role.permissions`` (both relationships are eager by default).
Matching is exact and case-sensitive; there are no wildcards.
"""

from typing import Iterable, Set, Tuple

from authkit.models.user import User


def has_permission(user: User, resource: str, action: str) -> bool:
    """True iff any assigned role carries the exact (resource, action) pair."""
    for role in user.roles:
        for permission in role.permissions:
            if permission.resource == resource and permission.action == action:
                return True
    return False


def has_permission_name(user: User, name: str) -> bool:
    """True iff any assigned role carries a permission with this name."""
    return any(p.name == name for role in user.roles for p in role.permissions)


def has_role(user: User, role_name: str) -> bool:
    """True iff any assigned role is named exactly ``role_name``."""
    return any(role.name == role_name for role in user.roles)


def has_any_role(user: User, role_names: Iterable[str]) -> bool:
    """Short-circuiting OR over :func:`has_role`."""
    return any(has_role(user, name) for name in role_names)


def permission_set(user: User) -> Set[Tuple[str, str]]:
    """Flattened set of (resource, action) pairs granted through all roles."""
    return {(p.resource, p.action) for role in user.roles for p in role.permissions}
