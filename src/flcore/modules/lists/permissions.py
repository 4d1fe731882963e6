"""List permissions."""

from flcore.core.permissions import Permission, PermissionRegistry


class ManageListItems(Permission):
    """Add, change and remove the items in a list."""

    NAME = "manage_list_items"
    BIT = 0x00000800


LIST_PERMISSIONS: tuple[type[Permission], ...] = (ManageListItems,)


def register_permissions(registry: PermissionRegistry) -> PermissionRegistry:
    """Register the list permissions that are not yet in ``registry``."""
    for cls in LIST_PERMISSIONS:
        if cls.NAME not in registry:
            registry.register(cls())
    return registry
