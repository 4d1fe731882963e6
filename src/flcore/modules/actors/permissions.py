"""Actor group permissions."""

from flcore.core.permissions import Permission, PermissionRegistry


class ManageMembers(Permission):
    """Permission to add and remove the members of an actor group."""

    NAME = "manage_actor_group_members"
    BIT = 0x00000080


def register_permissions(registry: PermissionRegistry) -> PermissionRegistry:
    """Register the actor group permissions that are not yet in ``registry``."""
    if ManageMembers.NAME not in registry:
        registry.register(ManageMembers())
    return registry
