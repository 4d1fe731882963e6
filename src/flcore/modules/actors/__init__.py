"""Actor groups."""

from flcore.modules.actors.models import ActorGroup, ActorGroupMember
from flcore.modules.actors.permissions import ManageMembers, register_permissions
from flcore.modules.actors.repos import ActorGroupRepository


__all__ = [
    "ActorGroup",
    "ActorGroupMember",
    "ActorGroupRepository",
    "ManageMembers",
    "register_permissions",
]
