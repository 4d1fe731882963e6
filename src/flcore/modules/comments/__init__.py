"""Comments on commentable objects."""

from flcore.modules.comments.checker import CommentChecker
from flcore.modules.comments.commentable import CommentableMixin, has_comments
from flcore.modules.comments.models import Comment, setup_comment_listeners, update_comment_counters
from flcore.modules.comments.permissions import (
    COMMENT_PERMISSIONS,
    CreateComments,
    IndexComments,
    register_permissions,
)
from flcore.modules.comments.schemas import CommentCreate, CommentQuery, CommentUpdate
from flcore.modules.comments.service import CommentService


setup_comment_listeners()


__all__ = [
    "COMMENT_PERMISSIONS",
    "Comment",
    "CommentChecker",
    "CommentCreate",
    "CommentQuery",
    "CommentService",
    "CommentUpdate",
    "CommentableMixin",
    "CreateComments",
    "IndexComments",
    "has_comments",
    "register_permissions",
    "setup_comment_listeners",
    "update_comment_counters",
]
