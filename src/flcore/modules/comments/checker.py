"""Access checker for comments."""

from typing import Any

from flcore.core.permissions import (
    Checker,
    Create,
    Delete,
    Index,
    Read,
    Write,
    permission_name,
    supports_access_control,
)
from flcore.core.references import reference_fingerprint
from flcore.modules.comments.permissions import CreateComments, IndexComments


class CommentChecker(Checker):
    """Grants access to a comment based on its commentable.

    Comments cannot be listed, created, modified or deleted through their
    own permissions. Reading a comment, or listing and adding comments to
    it, is allowed when the commentable has no access control, when the
    actor wrote the comment, or when the actor can read the commentable.

    The asset must be a loaded comment; class-level checks deny and
    unloaded references are inconclusive.
    """

    DENIED = frozenset({Index.NAME, Create.NAME, Write.NAME, Delete.NAME})
    DERIVED = frozenset({Read.NAME, IndexComments.NAME, CreateComments.NAME})

    def access_check(
        self,
        permission: Any,
        actor: Any,
        asset: Any,
        context: Any = None,
    ) -> bool | None:
        name = permission_name(permission)
        if name is None or name in self.DENIED or name not in self.DERIVED:
            return False
        if isinstance(asset, type):
            return False
        if not hasattr(asset, "author_fingerprint"):
            return None

        commentable = asset.commentable
        if commentable is None or not supports_access_control(commentable):
            return True
        actor_fp = reference_fingerprint(actor)
        if actor_fp is not None and actor_fp == asset.author_fingerprint:
            return True
        return commentable.has_permission(Read.NAME, actor, context)
