"""Factories for comment service parameters."""

from polyfactory import Ignore
from polyfactory.factories.pydantic_factory import ModelFactory

from flcore.modules.comments import CommentCreate


class CommentCreateFactory(ModelFactory[CommentCreate]):
    """Factory for creating CommentCreate schemas."""

    __model__ = CommentCreate

    commentable = Ignore()

    @classmethod
    def title(cls) -> str:
        """Generate a comment title."""
        return "A comment"

    @classmethod
    def contents_html(cls) -> str:
        """Generate HTML contents."""
        return f"<p>{cls.__faker__.sentence()}</p>"

    @classmethod
    def contents_json(cls) -> dict:
        """Generate structured contents."""
        return {"ops": [{"insert": "text"}]}
