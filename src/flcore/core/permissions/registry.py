"""Permission registry.

The registry owns the permission table and two derived caches: the
permission masks and the reverse grantor lists. Both caches are dropped on
every registration change and rebuilt on first use.

Registration is a start-up operation; the registry does no locking.
"""

import inspect
from pathlib import Path
from typing import Any

import structlog

from flcore.core.errors import (
    DuplicateBitError,
    DuplicateNameError,
    GrantCycleError,
    MissingPermissionError,
    PermissionRegistryError,
)
from flcore.core.permissions.permission import Permission, permission_name


logger = structlog.get_logger()

_THIS_FILE = Path(__file__).resolve()


def _caller_location() -> str | None:
    frame = inspect.currentframe()
    try:
        while frame is not None:
            filename = frame.f_code.co_filename
            if Path(filename).resolve() != _THIS_FILE:
                return f"{filename}:{frame.f_lineno}"
            frame = frame.f_back
        return None
    finally:
        del frame


class PermissionRegistry:
    """Table of registered permissions.

    Example:
        registry = PermissionRegistry()
        register_standard_permissions(registry)
        registry.permission_mask("edit")  # read | write
    """

    def __init__(self) -> None:
        self._permissions: dict[str, Permission] = {}
        self._locations: dict[str, str | None] = {}
        self._cumulative_mask = 0
        self._masks: dict[str, int] | None = None
        self._grantors: dict[str, list[str]] | None = None

    def __contains__(self, permission: Any) -> bool:
        return permission_name(permission) in self._permissions

    def __len__(self) -> int:
        return len(self._permissions)

    @property
    def cumulative_mask(self) -> int:
        """OR of the bits of every registered permission."""
        return self._cumulative_mask

    def register(self, permission: Permission, location: str | None = None) -> Permission:
        """Add a permission to the registry.

        Args:
            permission: The permission to register
            location: Source location for diagnostics; defaults to the caller

        Returns:
            The registered permission

        Raises:
            DuplicateNameError: If the name is already registered
            DuplicateBitError: If the bit overlaps a registered bit
            GrantCycleError: If the grants now form a cycle
            PermissionRegistryError: If the instance belongs to another registry
        """
        name = permission.name
        if permission.registry is not None and permission.registry is not self:
            raise PermissionRegistryError(
                f"permission '{name}' is registered in another registry; unregister it there first",
                name=name,
            )
        if name in self._permissions:
            raise DuplicateNameError(
                f"duplicate permission name '{name}'",
                name=name,
                details={"location": self._locations.get(name)},
            )
        if self._cumulative_mask & permission.bit:
            raise DuplicateBitError(
                f"permission '{name}' uses bit 0x{permission.bit:x}, already assigned",
                name=name,
                details={"bit": permission.bit, "registered": self.extract_permissions(permission.bit)},
            )

        self._permissions[name] = permission
        try:
            self._check_cycles(name)
        except GrantCycleError:
            del self._permissions[name]
            raise

        self._locations[name] = location or _caller_location()
        self._cumulative_mask |= permission.bit
        permission.registry = self
        self._invalidate()

        logger.debug("permission_registered", name=name, bit=permission.bit, grants=permission.grants)
        return permission

    def unregister(self, permission: Any) -> None:
        """Remove a permission; a no-op if it is not registered."""
        name = permission_name(permission)
        p = self._permissions.pop(name, None) if name else None
        if p is None:
            return

        self._cumulative_mask &= ~p.bit
        self._locations.pop(name, None)
        if p.registry is self:
            p.registry = None
        self._invalidate()

        logger.debug("permission_unregistered", name=name)

    def clear(self) -> None:
        """Remove every permission."""
        for p in self._permissions.values():
            if p.registry is self:
                p.registry = None
        self._permissions.clear()
        self._locations.clear()
        self._cumulative_mask = 0
        self._invalidate()

    def lookup(self, permission: Any) -> Permission | None:
        """Get a registered permission by name (or Permission reference)."""
        name = permission_name(permission)
        return self._permissions.get(name) if name else None

    def require(self, permission: Any) -> Permission:
        """Get a registered permission, raising if it is unknown.

        Raises:
            MissingPermissionError: If the permission is not registered
        """
        p = self.lookup(permission)
        if p is None:
            name = permission_name(permission)
            raise MissingPermissionError(f"unknown permission: {name or permission!r}", name=name)
        return p

    def location(self, permission: Any) -> str | None:
        """Source location where the permission was registered."""
        return self._locations.get(permission_name(permission) or "")

    def registered(self) -> list[str]:
        """Names of all registered permissions, in registration order."""
        return list(self._permissions)

    def permission_mask(self, permission: Any) -> int:
        """Mask for a permission; 0 for unknown permissions."""
        name = permission_name(permission)
        if self._masks is None:
            self._masks = self._rebuild_permission_masks()
        return self._masks.get(name, 0) if name else 0

    def permission_grantors(self) -> dict[str, list[str]]:
        """Map each permission name to the names of its grantors."""
        if self._grantors is None:
            self._grantors = self._rebuild_grantors()
        return {k: list(v) for k, v in self._grantors.items()}

    def grantors_for_permission(self, permission: Any) -> list[str]:
        """Names of permissions that grant ``permission``, transitively."""
        name = permission_name(permission)
        if self._grantors is None:
            self._grantors = self._rebuild_grantors()
        return list(self._grantors.get(name, [])) if name else []

    def extract_permissions(self, mask: int) -> list[str]:
        """Names of the permissions whose bit is set in ``mask``."""
        return [p.name for p in self._permissions.values() if p.bit and (mask & p.bit)]

    def expand_grants(self, permission: Any) -> list[Permission]:
        """Simple permissions reached through a permission's grants."""
        p = self.lookup(permission)
        if p is None:
            return []

        found: list[Permission] = []
        seen: set[str] = set()

        def _walk(perm: Permission) -> None:
            for g in perm.grants:
                gp = self._permissions.get(g)
                if gp is None:
                    continue
                if gp.is_simple:
                    if gp.name not in seen:
                        seen.add(gp.name)
                        found.append(gp)
                else:
                    _walk(gp)

        _walk(p)
        return found

    def _invalidate(self) -> None:
        self._masks = None
        self._grantors = None

    def _check_cycles(self, start: str) -> None:
        path: list[str] = []
        on_path: set[str] = set()
        done: set[str] = set()

        def _visit(name: str) -> None:
            if name in on_path:
                cycle = path[path.index(name) :] + [name]
                logger.error("permission_grant_cycle", cycle=cycle)
                raise GrantCycleError(cycle=cycle)
            p = self._permissions.get(name)
            if p is None or name in done:
                return
            path.append(name)
            on_path.add(name)
            for g in p.grants:
                _visit(g)
            path.pop()
            on_path.discard(name)
            done.add(name)

        _visit(start)

    def _rebuild_permission_masks(self) -> dict[str, int]:
        masks: dict[str, int] = {}
        on_path: list[str] = []

        def _mask(name: str) -> int:
            if name in masks:
                return masks[name]
            p = self._permissions.get(name)
            if p is None:
                return 0
            if name in on_path:
                raise GrantCycleError(cycle=on_path[on_path.index(name) :] + [name])
            on_path.append(name)
            m = p.bit
            for g in p.grants:
                m |= _mask(g)
            on_path.pop()
            masks[name] = m
            return m

        for name in self._permissions:
            _mask(name)
        return masks

    def _rebuild_grantors(self) -> dict[str, list[str]]:
        grantors: dict[str, list[str]] = {}

        def _register_grants(grants: list[str], grantor: str, visited: set[str]) -> None:
            for g in grants:
                if g in visited:
                    continue
                visited.add(g)
                names = grantors.setdefault(g, [])
                if grantor not in names:
                    names.append(grantor)
                gp = self._permissions.get(g)
                if gp is not None and gp.grants:
                    _register_grants(gp.grants, grantor, visited)

        for name, p in self._permissions.items():
            if p.grants:
                _register_grants(p.grants, name, set())

        for name, names in grantors.items():
            if name in names:
                names.remove(name)
        return grantors


class RegistryHolder:
    """Holder for the application's default registry.

    Uses a class attribute to manage module-level state without
    global statements.
    """

    registry: PermissionRegistry | None = None


def get_registry() -> PermissionRegistry:
    """Get the default registry, creating an empty one on first use."""
    if RegistryHolder.registry is None:
        RegistryHolder.registry = PermissionRegistry()
    return RegistryHolder.registry


def set_registry(registry: PermissionRegistry | None) -> None:
    """Install (or with None, drop) the default registry."""
    RegistryHolder.registry = registry
