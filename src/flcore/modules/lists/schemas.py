"""Pydantic schemas for list item service parameters."""

from typing import Any

from pydantic import BaseModel, ConfigDict


class ListItemQuery(BaseModel):
    """Query parameters accepted by the list item index."""

    model_config = ConfigDict(extra="ignore")

    only_owners: list[Any] | None = None
    except_owners: list[Any] | None = None
    only_listables: list[Any] | None = None
    except_listables: list[Any] | None = None
    created_after: str | int | None = None
    updated_after: str | int | None = None
    created_before: str | int | None = None
    updated_before: str | int | None = None
    order: str | list[str] | None = None
    limit: int | None = None
    offset: int | None = None


class ListItemCreate(BaseModel):
    """Parameters for adding an object to a list.

    ``listed_object`` is any reference form: a fingerprint, a global id or
    a ``{"type", "id"}`` dict.
    """

    model_config = ConfigDict(extra="ignore")

    listed_object: Any = None
    name: str | None = None
    state: str | int | None = None
    state_note: str | None = None
    state_locked: bool | None = None


class ListItemUpdate(BaseModel):
    """Parameters for updating a list item."""

    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    state: str | int | None = None
    state_note: str | None = None
    state_locked: bool | None = None
    sort_order: int | None = None
