"""Permission descriptors and the standard permission set.

A permission has a unique ``name``, a ``bit`` and a list of ``grants``.
Simple permissions carry a single bit that no other permission uses;
cumulative permissions have bit 0 and forward to the permissions they
grant, so their mask is the union of the granted masks.

Permissions can be declared as subclasses with ``NAME``, ``BIT`` and
``GRANTS`` class attributes and instantiated without arguments:

    class Archive(Permission):
        NAME = "archive"
        BIT = 0x0100

    registry.register(Archive())
"""

from typing import TYPE_CHECKING, Any, ClassVar

from flcore.core.errors import ConfigurationError


if TYPE_CHECKING:
    from flcore.core.permissions.registry import PermissionRegistry


def permission_name(permission: Any) -> str | None:
    """Normalize a permission reference to its name.

    Args:
        permission: A name, a Permission instance or a Permission subclass

    Returns:
        The permission name, or None if ``permission`` is not a reference
    """
    if isinstance(permission, str):
        return permission
    if isinstance(permission, Permission):
        return permission.name
    if isinstance(permission, type) and issubclass(permission, Permission):
        return permission.NAME
    return None


class Permission:
    """Description of one permission.

    Attributes:
        name: Unique permission name
        bit: Permission bit; 0 for cumulative permissions
        grants: Names of the permissions this one forwards to
        registry: Registry the permission was registered in, if any
    """

    NAME: ClassVar[str | None] = None
    BIT: ClassVar[int] = 0
    GRANTS: ClassVar[tuple[Any, ...]] = ()

    def __init__(
        self,
        name: str | None = None,
        bit: int | None = None,
        grants: list[Any] | tuple[Any, ...] | None = None,
    ) -> None:
        self.name = name or self.NAME
        if not self.name:
            raise ConfigurationError(f"no name given for permission class {type(self).__name__}")
        self.bit = self.BIT if bit is None else bit
        if self.bit < 0:
            raise ConfigurationError(f"negative bit for permission '{self.name}'")

        names: list[str] = []
        for g in self.GRANTS if grants is None else grants:
            gn = permission_name(g)
            if gn is None:
                raise ConfigurationError(f"invalid grant {g!r} for permission '{self.name}'")
            if gn not in names:
                names.append(gn)
        self.grants = names
        self.registry: PermissionRegistry | None = None

    def __repr__(self) -> str:
        return f"<Permission {self.name} bit=0x{self.bit:x} grants={self.grants}>"

    @property
    def is_simple(self) -> bool:
        """True for permissions with no grants."""
        return not self.grants

    def _registry(self, registry: "PermissionRegistry | None") -> "PermissionRegistry":
        reg = registry or self.registry
        if reg is None:
            raise ConfigurationError(f"permission '{self.name}' is not registered")
        return reg

    def permission_mask(self, registry: "PermissionRegistry | None" = None) -> int:
        """The own bit ORed with the masks of every granted permission."""
        return self._registry(registry).permission_mask(self.name)

    def expand_grants(self, registry: "PermissionRegistry | None" = None) -> list["Permission"]:
        """Simple permissions reached through the grants, without duplicates."""
        return self._registry(registry).expand_grants(self.name)

    def grantors(self, registry: "PermissionRegistry | None" = None) -> list[str]:
        """Names of the permissions that grant this one, directly or not."""
        return self._registry(registry).grantors_for_permission(self.name)


class Owner(Permission):
    """Ownership of an asset."""

    NAME = "owner"
    BIT = 0x00000001


class Create(Permission):
    """Create instances of a class."""

    NAME = "create"
    BIT = 0x00000002


class Read(Permission):
    """Read an asset."""

    NAME = "read"
    BIT = 0x00000004


class Write(Permission):
    """Modify an asset."""

    NAME = "write"
    BIT = 0x00000008


class Delete(Permission):
    """Delete an asset."""

    NAME = "delete"
    BIT = 0x00000010


class Index(Permission):
    """List instances of a class."""

    NAME = "index"
    BIT = 0x00000020


class IndexContents(Permission):
    """List the contents of a container asset."""

    NAME = "index_contents"
    BIT = 0x00000040


class Edit(Permission):
    """Read and write."""

    NAME = "edit"
    GRANTS = (Read, Write)


class Manage(Permission):
    """Edit and delete."""

    NAME = "manage"
    GRANTS = (Edit, Delete)


STANDARD_PERMISSIONS: tuple[type[Permission], ...] = (
    Owner,
    Create,
    Read,
    Write,
    Delete,
    Index,
    IndexContents,
    Edit,
    Manage,
)


def register_standard_permissions(registry: "PermissionRegistry") -> "PermissionRegistry":
    """Register the standard permissions that are not yet in ``registry``."""
    for cls in STANDARD_PERMISSIONS:
        if cls.NAME not in registry:
            registry.register(cls())
    return registry
