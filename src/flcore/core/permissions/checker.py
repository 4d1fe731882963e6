"""Access checkers.

A checker decides whether an actor has a permission on an asset. Model
classes get one through ``AccessControlMixin``; the checker is shared by
all instances unless an instance installs its own.

``access_check`` may return None for an inconclusive answer; callers go
through ``check`` (or ``has_permission``), which treats None as denial.
"""

from typing import Any

import structlog

from flcore.core.permissions.helper import permission_mask
from flcore.core.permissions.registry import PermissionRegistry, get_registry
from flcore.core.references import reference_fingerprint


logger = structlog.get_logger()


class Checker:
    """Base access checker; denies everything.

    Args:
        registry: Registry used to resolve permission names; defaults to
            the default registry at check time
    """

    def __init__(self, registry: PermissionRegistry | None = None) -> None:
        self._registry = registry

    @property
    def registry(self) -> PermissionRegistry:
        return self._registry or get_registry()

    def configure(self, base: type) -> None:
        """Hook called once when the checker is attached to a class.

        Subclasses override it to add class-specific behavior to ``base``.
        """
        logger.debug("access_checker_configured", checker=type(self).__name__, model=base.__name__)

    def access_check(
        self,
        permission: Any,
        actor: Any,
        asset: Any,
        context: Any = None,
    ) -> bool | None:
        """Run the access check.

        Args:
            permission: Permission name, instance or class
            actor: The actor requesting access (object or reference)
            asset: The asset, its class for class-level checks, or a reference
            context: Checker-specific context

        Returns:
            True to grant, False to deny, None if inconclusive
        """
        return False

    def check(self, permission: Any, actor: Any, asset: Any, context: Any = None) -> bool:
        """Run ``access_check`` and collapse inconclusive answers to False."""
        return self.access_check(permission, actor, asset, context) is True

    def permission_mask(self, permissions: Any) -> int:
        """Mask of a permission (or list of permissions) in this checker's registry."""
        return permission_mask(permissions, self.registry)


def asset_key(asset: Any) -> str | None:
    """Key for an asset: its fingerprint, or the class name for classes."""
    if isinstance(asset, type):
        return asset.__name__
    return reference_fingerprint(asset)


class GrantTableChecker(Checker):
    """Checker backed by an explicit table of grants.

    Grants are stored as ``{asset_key: {actor_fingerprint: mask}}``. A
    permission is granted when every bit of its mask is in the stored
    mask, so granting ``edit`` also grants ``read`` and ``write``.

    Actors and assets may be objects or references (fingerprints, global
    ids); class-level grants are keyed by the class name.

    Example:
        checker = GrantTableChecker(registry)
        checker.grant(["read", "delete"], actor, asset)
        checker.check("delete", actor, asset)  # True
        checker.check("write", actor, asset)  # False
    """

    def __init__(self, registry: PermissionRegistry | None = None) -> None:
        super().__init__(registry)
        self._grants: dict[str, dict[str, int]] = {}

    def grant(self, permissions: Any, actor: Any, asset: Any) -> int:
        """Grant permissions to an actor on an asset.

        Returns:
            The actor's mask on the asset after the grant

        Raises:
            MissingPermissionError: If a permission is not registered
            ValueError: If the actor or asset cannot be resolved to a key
        """
        actor_fp = reference_fingerprint(actor)
        key = asset_key(asset)
        if actor_fp is None or key is None:
            raise ValueError(f"cannot grant on unresolved actor {actor!r} or asset {asset!r}")
        items = permissions if isinstance(permissions, list | tuple | set) else [permissions]
        for p in items:
            if not isinstance(p, int):
                self.registry.require(p)
        grants = self._grants.setdefault(key, {})
        grants[actor_fp] = grants.get(actor_fp, 0) | self.permission_mask(permissions)
        return grants[actor_fp]

    def revoke(self, actor: Any, asset: Any, permissions: Any = None) -> None:
        """Revoke permissions (all of them if ``permissions`` is None)."""
        actor_fp = reference_fingerprint(actor)
        grants = self._grants.get(asset_key(asset) or "", {})
        if actor_fp not in grants:
            return
        if permissions is None:
            del grants[actor_fp]
        else:
            grants[actor_fp] &= ~self.permission_mask(permissions)

    def granted_mask(self, actor: Any, asset: Any) -> int:
        """The mask stored for an actor on an asset."""
        actor_fp = reference_fingerprint(actor)
        if actor_fp is None:
            return 0
        return self._grants.get(asset_key(asset) or "", {}).get(actor_fp, 0)

    def access_check(
        self,
        permission: Any,
        actor: Any,
        asset: Any,
        context: Any = None,
    ) -> bool | None:
        mask = self.permission_mask(permission)
        if mask == 0:
            return False
        return (self.granted_mask(actor, asset) & mask) == mask
