"""Lists of listable objects."""

from flcore.modules.lists.listable import ListableMixin, listable, make_listable, traverse_containers
from flcore.modules.lists.models import (
    STATE_DESELECTED,
    STATE_SELECTED,
    List,
    ListItem,
    list_item_states,
    maintain_list_items,
    register_list_item_state,
    setup_list_listeners,
    state_from_db,
    state_to_db,
)
from flcore.modules.lists.permissions import LIST_PERMISSIONS, ManageListItems, register_permissions
from flcore.modules.lists.schemas import ListItemCreate, ListItemQuery, ListItemUpdate
from flcore.modules.lists.service import ListItemService


setup_list_listeners()


__all__ = [
    "LIST_PERMISSIONS",
    "STATE_DESELECTED",
    "STATE_SELECTED",
    "List",
    "ListItem",
    "ListItemCreate",
    "ListItemQuery",
    "ListItemService",
    "ListItemUpdate",
    "ListableMixin",
    "ManageListItems",
    "list_item_states",
    "listable",
    "maintain_list_items",
    "make_listable",
    "register_list_item_state",
    "register_permissions",
    "setup_list_listeners",
    "state_from_db",
    "state_to_db",
    "traverse_containers",
]
