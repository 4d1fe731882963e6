"""Comment service."""

from typing import Any

import structlog
from pydantic import BaseModel
from sqlalchemy import Select

from flcore.core.permissions import supports_access_control
from flcore.core.references import reference_fingerprint
from flcore.modules.comments.models import Comment
from flcore.modules.comments.permissions import CreateComments, IndexComments
from flcore.modules.comments.schemas import CommentCreate, CommentQuery, CommentUpdate
from flcore.services import BaseService


logger = structlog.get_logger()


def _set_fields(model: BaseModel) -> dict[str, Any]:
    return {k: getattr(model, k) for k in model.model_fields_set}


class CommentService(BaseService):
    """Service for comments.

    Parameters may be passed flat or nested under the ``comment`` key.

    Access rules:
        - anyone may call ``index``; the listed commentables are limited
          to those on which the actor has ``index_comments``
        - ``create`` requires an actor with ``create_comments`` on the
          commentable (or a commentable without access control)
        - only the author may ``update`` a comment
        - ``show`` and ``destroy`` go through the comment's checker
    """

    model_class = Comment
    params_key = "comment"

    def _comment_params(self, params: dict[str, Any] | None) -> dict[str, Any]:
        p = params if params is not None else self.params
        nested = p.get(self.params_key)
        return nested if isinstance(nested, dict) else p

    def query_params(self, params: dict[str, Any] | None = None) -> dict[str, Any]:
        p = params if params is not None else self.params
        q = p.get("_q")
        return CommentQuery(**q).model_dump(exclude_none=True) if isinstance(q, dict) else {}

    def create_params(self, params: dict[str, Any] | None = None) -> dict[str, Any]:
        p = _set_fields(CommentCreate(**self._comment_params(params)))
        p["author"] = self.actor
        return p

    def update_params(self, params: dict[str, Any] | None = None) -> dict[str, Any]:
        return _set_fields(CommentUpdate(**self._comment_params(params)))

    def _has_action_permission(self, action: str, obj: Any, context: Any = None) -> bool:
        if action == "index":
            return True

        if action == "create":
            if self.actor is None:
                return False
            p = context if isinstance(context, dict) else self.create_params()
            ref = p.get("commentable")
            commentable = self.locator.find(self.session, ref) if ref is not None else None
            if commentable is None or not getattr(commentable, "is_commentable", lambda: False)():
                return False
            if not supports_access_control(commentable):
                return True
            return commentable.has_permission(CreateComments.NAME, self.actor, context)

        if action == "update":
            actor_fp = reference_fingerprint(self.actor)
            return actor_fp is not None and obj is not None and obj.author_fingerprint == actor_fp

        return super()._has_action_permission(action, obj, context)

    def _visible_commentables(self, refs: Any) -> list[Any]:
        if refs is None:
            return []
        if not isinstance(refs, list | tuple):
            refs = [refs]
        objects = self.locator.find_all(self.session, refs)
        visible = [
            o for o in objects
            if not supports_access_control(o) or o.has_permission(IndexComments.NAME, self.actor)
        ]
        if len(visible) < len(refs):
            logger.debug("comment_commentables_dropped", requested=len(refs), kept=len(visible))
        return visible

    def index_query(self, query_opts: dict[str, Any]) -> Select | None:
        """Comments on the ``only_commentables`` the actor may list comments for.

        ``except_commentables`` is ignored; with no listable commentable
        there is no query.
        """
        opts = dict(query_opts)
        opts.pop("except_commentables", None)
        commentables = self._visible_commentables(opts.get("only_commentables"))
        if not commentables:
            return None
        opts["only_commentables"] = [o.fingerprint() for o in commentables]
        return Comment.build_query(opts)
