"""Comment permissions."""

from flcore.core.permissions import Permission, PermissionRegistry


class IndexComments(Permission):
    """List the comments attached to a commentable."""

    NAME = "index_comments"
    BIT = 0x00000200


class CreateComments(Permission):
    """Add comments to a commentable."""

    NAME = "create_comments"
    BIT = 0x00000400


COMMENT_PERMISSIONS: tuple[type[Permission], ...] = (IndexComments, CreateComments)


def register_permissions(registry: PermissionRegistry) -> PermissionRegistry:
    """Register the comment permissions that are not yet in ``registry``."""
    for cls in COMMENT_PERMISSIONS:
        if cls.NAME not in registry:
            registry.register(cls())
    return registry
