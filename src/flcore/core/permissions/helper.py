"""Helpers for working with permission references and masks."""

from collections.abc import Iterable
from typing import Any

from flcore.core.permissions.permission import Permission, permission_name
from flcore.core.permissions.registry import PermissionRegistry, get_registry


def permission_names(permissions: Iterable[Any], registry: PermissionRegistry | None = None) -> list[str]:
    """Normalize a list of permission references to registered names.

    Unknown permissions are dropped.
    """
    reg = registry or get_registry()
    names: list[str] = []
    for p in permissions:
        name = permission_name(p)
        if name is not None and name in reg and name not in names:
            names.append(name)
    return names


def permission_mask(permissions: Any, registry: PermissionRegistry | None = None) -> int:
    """Compute the mask for one permission or a list of them.

    Args:
        permissions: A permission reference, an integer mask, or a list
            of either; integers are ORed in as they are
        registry: Registry to resolve names in; defaults to the default registry

    Returns:
        The combined mask; unknown permissions contribute 0
    """
    reg = registry or get_registry()
    items = permissions if isinstance(permissions, list | tuple | set) else [permissions]
    mask = 0
    for p in items:
        if isinstance(p, int) and not isinstance(p, bool):
            mask |= p
        else:
            mask |= reg.permission_mask(p)
    return mask


def lookup_permission(permission: Any, registry: PermissionRegistry | None = None) -> Permission | None:
    """Get the registered permission for a reference."""
    return (registry or get_registry()).lookup(permission)
