"""Pydantic schemas for comment service parameters."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict


class CommentQuery(BaseModel):
    """Query parameters accepted by the comment index."""

    model_config = ConfigDict(extra="ignore")

    only_commentables: list[Any] | None = None
    only_authors: list[Any] | None = None
    except_authors: list[Any] | None = None
    created_after: str | int | None = None
    updated_after: str | int | None = None
    created_before: str | int | None = None
    updated_before: str | int | None = None
    visibility: Literal["visible", "hidden", "both"] | None = None
    order: str | list[str] | None = None
    limit: int | None = None
    offset: int | None = None


class CommentCreate(BaseModel):
    """Parameters for creating a comment.

    ``commentable`` is any reference form: a fingerprint, a global id or a
    ``{"type", "id"}`` dict.
    """

    model_config = ConfigDict(extra="ignore")

    commentable: Any = None
    title: str | None = None
    contents_html: str | None = None
    contents_json: Any = None


class CommentUpdate(BaseModel):
    """Parameters for updating a comment."""

    model_config = ConfigDict(extra="ignore")

    title: str | None = None
    contents_html: str | None = None
    contents_json: Any = None
