"""Actor group repository."""

from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from flcore.core.constants import PUBLIC_GROUP_NAME
from flcore.core.errors import ConflictError, ValidationError
from flcore.core.messages import message
from flcore.modules.actors.models import ActorGroup


logger = structlog.get_logger()


class ActorGroupRepository:
    """Repository for ActorGroup database operations."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def get_by_name(self, name: str) -> ActorGroup | None:
        """Get a group by name, ignoring case."""
        stmt = select(ActorGroup).where(func.lower(ActorGroup.name) == name.lower())
        return self.session.scalars(stmt).first()

    def create(self, name: str, note: str | None = None, owner: Any = None) -> ActorGroup:
        """Create a group.

        Raises:
            ValidationError: If the group is invalid
            ConflictError: If a group with the same name exists
        """
        group = ActorGroup(name=name, note=note, owner=owner)
        errors = group.validate()
        if errors:
            raise ValidationError(errors=errors)
        if self.get_by_name(name) is not None:
            raise ConflictError(message("actor_group.duplicate_name", name=name), details={"name": name})

        self.session.add(group)
        self.session.flush()
        logger.info("actor_group_created", group=group.fingerprint(), name=name)
        return group

    def ensure_public_group(self) -> ActorGroup:
        """Get the public group, creating it if needed."""
        group = self.get_by_name(PUBLIC_GROUP_NAME)
        if group is None:
            group = self.create(PUBLIC_GROUP_NAME, note="Public group")
        return group
