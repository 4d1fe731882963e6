"""Unit tests for the permission registry.

These tests verify:
- Registration, duplicate detection and rollback on failure
- Mask computation for simple and cumulative permissions
- Grantor lists and grant expansion
- Grant cycle detection
"""

import pytest

from flcore.core.errors import (
    ConfigurationError,
    DuplicateBitError,
    DuplicateNameError,
    GrantCycleError,
    MissingPermissionError,
    PermissionRegistryError,
)
from flcore.core.permissions import (
    STANDARD_PERMISSIONS,
    Create,
    Edit,
    Manage,
    Permission,
    PermissionRegistry,
    Read,
    Write,
    get_registry,
    lookup_permission,
    permission_mask,
    permission_name,
    permission_names,
    register_standard_permissions,
)


pytestmark = pytest.mark.unit


@pytest.fixture
def standard() -> PermissionRegistry:
    """Registry with only the standard permissions."""
    return register_standard_permissions(PermissionRegistry())


class TestPermission:
    """Tests for the Permission descriptor."""

    def test_subclass_defaults(self):
        """Test that subclasses instantiate from their class attributes."""
        p = Edit()
        assert p.name == "edit"
        assert p.bit == 0
        assert p.grants == ["read", "write"]
        assert not p.is_simple

    def test_grants_normalized(self):
        """Test that grants accept names, instances and classes."""
        p = Permission("custom", 0, ["read", Write(), Create])
        assert p.grants == ["read", "write", "create"]

    def test_invalid_definitions(self):
        """Test that nameless permissions, negative bits and bad grants are rejected."""
        with pytest.raises(ConfigurationError):
            Permission()
        with pytest.raises(ConfigurationError):
            Permission("bad", -1)
        with pytest.raises(ConfigurationError):
            Permission("bad", 0, [42])

    def test_permission_name(self):
        """Test normalizing permission references."""
        assert permission_name("read") == "read"
        assert permission_name(Read) == "read"
        assert permission_name(Read()) == "read"
        assert permission_name(3) is None

    def test_unregistered_permission_operations(self):
        """Test that an unregistered permission needs an explicit registry."""
        with pytest.raises(ConfigurationError):
            Read().permission_mask()


class TestRegistration:
    """Tests for register and unregister."""

    def test_register_standard(self, standard):
        """Test registering the standard permission set."""
        assert len(standard) == len(STANDARD_PERMISSIONS)
        assert "read" in standard
        assert standard.cumulative_mask == 0x7F
        assert standard.registered()[:3] == ["owner", "create", "read"]

    def test_register_binds_registry_and_location(self):
        """Test that registration records the registry and the caller location."""
        reg = PermissionRegistry()
        p = reg.register(Read())
        assert p.registry is reg
        assert reg.lookup("read") is p
        assert "test_registry.py" in reg.location("read")

    def test_duplicate_name(self, standard):
        """Test that duplicate names raise and leave the registry unchanged."""
        before = (standard.registered(), standard.cumulative_mask)
        with pytest.raises(DuplicateNameError) as exc_info:
            standard.register(Permission("read", 0x1000))
        assert exc_info.value.name == "read"
        assert (standard.registered(), standard.cumulative_mask) == before

    def test_duplicate_bit(self, standard):
        """Test that overlapping bits raise and leave the registry unchanged."""
        before = (standard.registered(), standard.cumulative_mask)
        with pytest.raises(DuplicateBitError):
            standard.register(Permission("other_read", Read.BIT))
        assert (standard.registered(), standard.cumulative_mask) == before
        assert "other_read" not in standard

    def test_unregister(self, standard):
        """Test that unregistering clears the bit and the caches."""
        assert standard.permission_mask("edit") == 12
        standard.unregister("write")
        assert "write" not in standard
        assert standard.cumulative_mask & Write.BIT == 0
        assert standard.permission_mask("edit") == Read.BIT
        standard.unregister("write")

    def test_bit_reusable_after_unregister(self, standard):
        """Test that a freed bit can be registered again."""
        standard.unregister("write")
        standard.register(Permission("scribble", Write.BIT))
        assert standard.permission_mask("scribble") == Write.BIT

    def test_clear(self, standard):
        """Test clearing the registry."""
        read = standard.lookup("read")
        standard.clear()
        assert len(standard) == 0
        assert standard.cumulative_mask == 0
        assert read.registry is None

    def test_require(self, standard):
        """Test that require raises for unknown permissions."""
        assert standard.require(Read) is standard.lookup("read")
        with pytest.raises(MissingPermissionError):
            standard.require("fly")

    def test_independent_registries(self, standard):
        """Test that registries do not share state."""
        other = PermissionRegistry()
        other.register(Permission("read", 0x1))
        assert other.permission_mask("read") == 0x1
        assert standard.permission_mask("read") == Read.BIT
        assert get_registry() is not other

    def test_instance_bound_to_another_registry(self, standard):
        """Test that a registered instance cannot be added to a second registry."""
        read = standard.lookup("read")
        other = PermissionRegistry()
        with pytest.raises(PermissionRegistryError) as exc_info:
            other.register(read)
        assert exc_info.value.name == "read"
        assert read.registry is standard
        assert "read" not in other

    def test_instance_rebound_after_unregister(self, standard):
        """Test that an unregistered instance may join another registry."""
        read = standard.lookup("read")
        standard.unregister("read")
        other = PermissionRegistry()
        assert other.register(read).registry is other


class TestMasks:
    """Tests for permission masks."""

    def test_simple_mask_is_bit(self, standard):
        """Test that a simple permission's mask is its bit."""
        for name in standard.registered():
            p = standard.lookup(name)
            if p.is_simple:
                assert standard.permission_mask(name) == p.bit

    def test_cumulative_mask(self, standard):
        """Test that cumulative masks are the union of the granted bits."""
        assert standard.permission_mask(Edit) == 12
        assert standard.permission_mask("manage") == 12 | 0x10
        assert Manage().permission_mask(standard) == 0x1C

    def test_unknown_permission_mask(self, standard):
        """Test that unknown permissions have mask 0."""
        assert standard.permission_mask("fly") == 0
        assert standard.permission_mask(None) == 0

    def test_unregistered_grant_contributes_nothing(self, standard):
        """Test that grants of unregistered permissions are ignored."""
        standard.register(Permission("partial", 0, ["read", "fly"]))
        assert standard.permission_mask("partial") == Read.BIT

    def test_extract_permissions(self, standard):
        """Test extracting simple permission names from a mask."""
        assert standard.extract_permissions(0x0C) == ["read", "write"]
        assert standard.extract_permissions(0) == []

    def test_mask_helpers(self, standard):
        """Test the module-level helpers."""
        assert permission_mask(["read", "delete"], standard) == 0x14
        assert permission_mask([0x100, "read"], standard) == 0x104
        assert permission_names(["read", Edit, "fly", "read"], standard) == ["read", "edit"]
        assert lookup_permission("edit", standard).name == "edit"


class TestGrants:
    """Tests for grantors and grant expansion."""

    def test_grantors_transitive(self, standard):
        """Test that grantors include indirect grantors."""
        assert set(standard.grantors_for_permission("read")) == {"edit", "manage"}
        assert standard.grantors_for_permission("delete") == ["manage"]
        assert standard.grantors_for_permission("owner") == []

    def test_permission_grantors_map(self, standard):
        """Test the full grantors map."""
        grantors = standard.permission_grantors()
        assert set(grantors["write"]) == {"edit", "manage"}
        assert grantors["edit"] == ["manage"]

    def test_expand_grants(self, standard):
        """Test expanding a cumulative permission to simple permissions."""
        names = [p.name for p in standard.expand_grants("manage")]
        assert names == ["read", "write", "delete"]
        assert [p.name for p in Edit().expand_grants(standard)] == ["read", "write"]
        assert standard.expand_grants("fly") == []

    def test_grantors_from_permission(self, standard):
        """Test the grantors method of a registered permission."""
        assert set(standard.lookup("write").grantors()) == {"edit", "manage"}


class TestCycles:
    """Tests for grant cycle detection."""

    def test_self_cycle(self):
        """Test that a permission granting itself is rejected."""
        reg = PermissionRegistry()
        with pytest.raises(GrantCycleError) as exc_info:
            reg.register(Permission("loop", 0, ["loop"]))
        assert exc_info.value.cycle == ["loop", "loop"]
        assert "loop" not in reg

    def test_indirect_cycle(self):
        """Test that a cycle closed by a later registration is rejected."""
        reg = PermissionRegistry()
        reg.register(Permission("a", 0, ["b"]))
        reg.register(Permission("b", 0, ["c"]))
        with pytest.raises(GrantCycleError) as exc_info:
            reg.register(Permission("c", 0, ["a"]))
        assert exc_info.value.cycle == ["c", "a", "b", "c"]
        assert "c" not in reg
        assert reg.permission_mask("a") == 0
