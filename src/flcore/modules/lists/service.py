"""List item service."""

from typing import Any

import structlog
from pydantic import BaseModel
from sqlalchemy import Select

from flcore.core.permissions import Read, check_permission
from flcore.modules.lists.models import List, ListItem, state_to_db
from flcore.modules.lists.permissions import ManageListItems
from flcore.modules.lists.schemas import ListItemCreate, ListItemQuery, ListItemUpdate
from flcore.services import NestedService


logger = structlog.get_logger()


def _set_fields(model: BaseModel) -> dict[str, Any]:
    return {k: getattr(model, k) for k in model.model_fields_set}


class ListItemService(NestedService):
    """Service for the items of the list named by the ``list_id`` parameter.

    Parameters may be passed flat or nested under the ``list_item`` key.
    New items are owned by the acting actor.

    Access rules apply when the list has access control:
        - ``create``, ``update`` and ``destroy`` require
          ``manage_list_items`` on the list
        - ``show`` requires ``read`` on the list
        - ``index`` requires ``index_contents`` on the list

    A locked item rejects state changes.
    """

    model_class = ListItem
    owner_class = List
    params_key = "list_item"

    def _item_params(self, params: dict[str, Any] | None) -> dict[str, Any]:
        p = params if params is not None else self.params
        nested = p.get(self.params_key)
        return nested if isinstance(nested, dict) else p

    def query_params(self, params: dict[str, Any] | None = None) -> dict[str, Any]:
        p = params if params is not None else self.params
        q = p.get("_q")
        return ListItemQuery(**q).model_dump(exclude_none=True) if isinstance(q, dict) else {}

    def create_params(self, params: dict[str, Any] | None = None) -> dict[str, Any]:
        p = _set_fields(ListItemCreate(**self._item_params(params)))
        if self.actor is not None:
            p["owner"] = self.actor
            p["state_updated_by"] = self.actor
        return p

    def update_params(self, params: dict[str, Any] | None = None) -> dict[str, Any]:
        return _set_fields(ListItemUpdate(**self._item_params(params)))

    # ------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------

    def create(self, captcha: bool = False, params: dict[str, Any] | None = None, context: Any = None) -> Any:
        """Add an object to the list; see ``create_nested``."""
        return self.create_nested(captcha=captcha, owner_attribute_name="list", params=params, context=context)

    def index(
        self,
        query_opts: dict[str, Any] | None = None,
        _q: dict[str, Any] | None = None,
        _pg: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """List the items of the list, in sort order by default."""
        return super().index({"order": "sort_order ASC", **(query_opts or {})}, _q, _pg)

    def index_query(self, query_opts: dict[str, Any]) -> Select | None:
        return ListItem.query_for_list(self.owner, query_opts)

    def save_object(self, obj: Any) -> dict[str, list[str]]:
        errors = super().save_object(obj)
        if errors and obj.list is not None and obj in obj.list.list_items:
            obj.list.list_items.remove(obj)
        return errors

    def update_object(self, obj: Any, params: dict[str, Any]) -> bool:
        p = dict(params)
        if "state" in p:
            state = p.pop("state")
            locked = p.get("state_locked", obj.state_locked)
            if locked and state_to_db(state) != obj.state_value:
                logger.debug("list_item_state_locked", item=obj.fingerprint())
                return False
            obj.set_state(state, self.actor)
        return super().update_object(obj, p)

    # ------------------------------------------------------------
    # Access checks
    # ------------------------------------------------------------

    def do_access_checks(self, action: str, obj: Any = None, context: Any = None) -> bool:
        target = obj.list if isinstance(obj, ListItem) else obj
        return super().do_access_checks(action, target, context)

    def _has_action_permission(self, action: str, obj: Any, context: Any = None) -> bool:
        if isinstance(obj, ListItem):
            permission = Read.NAME if action == "show" else ManageListItems.NAME
            return check_permission(obj.list, permission, self.actor, context)
        if isinstance(obj, List) and action == "create":
            return check_permission(obj, ManageListItems.NAME, self.actor, context)
        return super()._has_action_permission(action, obj, context)
