"""Unit tests for actor groups.

These tests verify:
- Group validation and ownership
- Adding, removing and resolving members
- The repository's lookups and uniqueness checks
"""

import pytest

from flcore.core.constants import MAX_NAME_LENGTH, PUBLIC_GROUP_NAME
from flcore.core.errors import ConflictError, NotFoundError, ValidationError
from flcore.modules.actors import ActorGroup, ActorGroupRepository, ManageMembers


pytestmark = pytest.mark.unit


@pytest.fixture
def repo(db) -> ActorGroupRepository:
    return ActorGroupRepository(db)


class TestActorGroup:
    """Tests for the ActorGroup model."""

    def test_validate(self):
        """Test name validation."""
        assert ActorGroup(name="Editors").validate() == {}
        assert ActorGroup(name="  ").validate() == {"name": ["can't be blank"]}
        assert ActorGroup(name="x" * (MAX_NAME_LENGTH + 1)).validate() == {
            "name": [f"is too long (maximum is {MAX_NAME_LENGTH} characters)"]
        }

    def test_owner(self, actor):
        """Test that the owner is stored as a fingerprint."""
        group = ActorGroup(name="Owned", owner=actor)
        assert group.owner == actor.fingerprint()
        assert group.owner_fingerprint == actor.fingerprint()

    def test_add_member(self, actor, other_actor):
        """Test adding members by object and by reference."""
        group = ActorGroup(name="Team")
        member = group.add_member(actor, title="Lead")
        group.add_member(other_actor.fingerprint())

        assert member.title == "Lead"
        assert group.members == [actor.fingerprint(), other_actor.fingerprint()]
        assert group.has_member(actor)
        assert not group.has_member("SampleActor/999")

    def test_add_member_twice(self, actor):
        """Test that adding a member twice is a conflict."""
        group = ActorGroup(name="Team")
        group.add_member(actor)
        with pytest.raises(ConflictError) as exc_info:
            group.add_member(actor.to_global_id())
        assert exc_info.value.message == f"The actor '{actor.fingerprint()}' is already in group 'Team'"

    def test_add_bad_reference(self):
        """Test that members must be valid references."""
        group = ActorGroup(name="Team")
        with pytest.raises(ValidationError) as exc_info:
            group.add_member("junk")
        assert "actor" in exc_info.value.errors

    def test_remove_member(self, actor, other_actor):
        """Test removing a member."""
        group = ActorGroup(name="Team")
        group.add_member(actor)
        group.add_member(other_actor)

        group.remove_member(actor)
        assert group.members == [other_actor.fingerprint()]

        with pytest.raises(NotFoundError):
            group.remove_member(actor)

    def test_resolve_members(self, db, repo, actor, other_actor):
        """Test loading member objects; deleted members are skipped."""
        group = repo.create("Resolved")
        group.add_member(actor)
        group.add_member(other_actor)
        group.add_member("SampleActor/999")
        db.flush()

        assert group.resolve_members(db) == [actor, other_actor]
        assert group.memberships[0].resolve_actor(db) is actor
        assert group.memberships[0].group is group


class TestActorGroupRepository:
    """Tests for ActorGroupRepository."""

    def test_create(self, repo, actor):
        """Test creating a group."""
        group = repo.create("Reviewers", note="Review team", owner=actor)
        assert group.id is not None
        assert group.fingerprint() == f"ActorGroup/{group.id}"
        assert repo.get_by_name("reviewers") is group

    def test_duplicate_name(self, repo):
        """Test that names are unique regardless of case."""
        repo.create("Reviewers")
        with pytest.raises(ConflictError):
            repo.create("REVIEWERS")

    def test_invalid_group(self, repo):
        """Test that invalid groups are not created."""
        with pytest.raises(ValidationError) as exc_info:
            repo.create("")
        assert exc_info.value.errors == {"name": ["can't be blank"]}

    def test_ensure_public_group(self, repo):
        """Test that the public group is created once."""
        group = repo.ensure_public_group()
        assert group.name == PUBLIC_GROUP_NAME
        assert repo.ensure_public_group() is group


class TestActorPermissions:
    """Tests for the actor group permissions."""

    def test_registered(self, registry):
        """Test that module permissions are registered."""
        assert ManageMembers.NAME in registry
        assert registry.permission_mask(ManageMembers.NAME) == ManageMembers.BIT
