"""Permission registry, checkers and the access control mixin."""

from flcore.core.permissions.access import (
    AccessControlMixin,
    PermissionCheckable,
    access_controlled,
    add_access_control,
    check_permission,
    enable_access_control,
    supports_access_control,
)
from flcore.core.permissions.checker import Checker, GrantTableChecker
from flcore.core.permissions.helper import lookup_permission, permission_mask, permission_names
from flcore.core.permissions.permission import (
    STANDARD_PERMISSIONS,
    Create,
    Delete,
    Edit,
    Index,
    IndexContents,
    Manage,
    Owner,
    Permission,
    Read,
    Write,
    permission_name,
    register_standard_permissions,
)
from flcore.core.permissions.registry import (
    PermissionRegistry,
    RegistryHolder,
    get_registry,
    set_registry,
)


__all__ = [
    "STANDARD_PERMISSIONS",
    "AccessControlMixin",
    "Checker",
    "Create",
    "Delete",
    "Edit",
    "GrantTableChecker",
    "Index",
    "IndexContents",
    "Manage",
    "Owner",
    "Permission",
    "PermissionCheckable",
    "PermissionRegistry",
    "Read",
    "RegistryHolder",
    "Write",
    "access_controlled",
    "add_access_control",
    "check_permission",
    "enable_access_control",
    "get_registry",
    "lookup_permission",
    "permission_mask",
    "permission_name",
    "permission_names",
    "register_standard_permissions",
    "set_registry",
    "supports_access_control",
]
