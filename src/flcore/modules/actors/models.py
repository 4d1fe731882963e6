"""Actor group database models."""

from typing import Any

from sqlalchemy import ForeignKey, Index, String, Text, func
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from flcore.core.constants import MAX_FINGERPRINT_LENGTH, MAX_NAME_LENGTH
from flcore.core.database import Base, IntIDMixin, ModelLocator, TimestampMixin, add_error, locator as default_locator
from flcore.core.errors import ConflictError, NotFoundError, ValidationError
from flcore.core.messages import message
from flcore.core.references import reference_fingerprint


class ActorGroup(Base, IntIDMixin, TimestampMixin):
    """A named group of actors.

    Members are stored by fingerprint, so any model can be a member.
    Groups expose ``members`` and can be used wherever query helpers
    accept groups (``only_groups``/``except_groups``).

    Attributes:
        name: Group name, unique regardless of case
        note: Free-form description
        owner_fingerprint: Fingerprint of the actor that owns the group
        memberships: Member rows
    """

    __tablename__ = "fl_core_actor_groups"

    name: Mapped[str] = mapped_column(String(MAX_NAME_LENGTH), nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    owner_fingerprint: Mapped[str | None] = mapped_column(
        String(MAX_FINGERPRINT_LENGTH),
        nullable=True,
        index=True,
    )

    memberships: Mapped[list["ActorGroupMember"]] = relationship(
        "ActorGroupMember",
        back_populates="group",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ActorGroupMember.id",
    )

    def __init__(self, owner: Any = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        if owner is not None:
            self.owner = owner

    @property
    def owner(self) -> str | None:
        """Fingerprint of the owner."""
        return self.owner_fingerprint

    @owner.setter
    def owner(self, value: Any) -> None:
        self.owner_fingerprint = reference_fingerprint(value)

    @property
    def members(self) -> list[str]:
        """Fingerprints of the member actors."""
        return [m.actor_fingerprint for m in self.memberships]

    def has_member(self, actor: Any) -> bool:
        fp = reference_fingerprint(actor)
        return fp is not None and fp in self.members

    def add_member(self, actor: Any, title: str | None = None, note: str | None = None) -> "ActorGroupMember":
        """Add an actor to the group.

        Args:
            actor: The actor, or a reference to it
            title: Title of the member in the group
            note: Free-form note

        Returns:
            The new member row

        Raises:
            ValidationError: If ``actor`` is not a valid reference
            ConflictError: If the actor is already a member
        """
        fp = reference_fingerprint(actor)
        if fp is None:
            raise ValidationError(errors={"actor": [message("validation.bad_reference", value=actor)]})
        if fp in self.members:
            raise ConflictError(
                message("actor_group.already_in_group", actor=fp, group=self.name),
                details={"actor": fp, "group": self.name},
            )

        member = ActorGroupMember(actor_fingerprint=fp, title=title, note=note)
        self.memberships.append(member)
        return member

    def remove_member(self, actor: Any) -> None:
        """Remove an actor from the group.

        Raises:
            NotFoundError: If the actor is not a member
        """
        fp = reference_fingerprint(actor)
        for m in self.memberships:
            if m.actor_fingerprint == fp:
                self.memberships.remove(m)
                return
        raise NotFoundError(
            message("actor_group.not_in_group", actor=fp or actor, group=self.name),
            resource="ActorGroupMember",
            resource_id=fp,
        )

    def resolve_members(self, session: Session, locator: ModelLocator | None = None) -> list[Any]:
        """Load the member actors; members that no longer exist are skipped."""
        return (locator or default_locator).find_all(session, self.members)

    def validate(self) -> dict[str, list[str]]:
        errors: dict[str, list[str]] = {}
        if not self.name or not self.name.strip():
            add_error(errors, "name", message("validation.blank"))
        elif len(self.name) > MAX_NAME_LENGTH:
            add_error(errors, "name", message("validation.too_long", count=MAX_NAME_LENGTH))
        return errors


Index("fl_core_act_grp_name_u_idx", func.lower(ActorGroup.name), unique=True)


class ActorGroupMember(Base, IntIDMixin, TimestampMixin):
    """Membership of an actor in a group.

    Attributes:
        title: Title of the member in the group
        note: Free-form note
        group_id: The group
        actor_fingerprint: Fingerprint of the member actor
    """

    __tablename__ = "fl_core_actor_group_members"

    title: Mapped[str | None] = mapped_column(String(MAX_NAME_LENGTH), nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    group_id: Mapped[int] = mapped_column(
        ForeignKey("fl_core_actor_groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    actor_fingerprint: Mapped[str] = mapped_column(
        String(MAX_FINGERPRINT_LENGTH),
        nullable=False,
        index=True,
    )

    group: Mapped[ActorGroup] = relationship("ActorGroup", back_populates="memberships")

    def resolve_actor(self, session: Session, locator: ModelLocator | None = None) -> Any | None:
        """Load the member actor."""
        return (locator or default_locator).find(session, self.actor_fingerprint)
