"""Feature modules with permission discovery."""

from importlib import import_module
from pathlib import Path

import structlog

from flcore.core.permissions import PermissionRegistry, get_registry, register_standard_permissions


logger = structlog.get_logger()


def discover_modules() -> list[str]:
    """Names of the feature modules in this package."""
    modules_dir = Path(__file__).parent
    return [
        path.name
        for path in sorted(modules_dir.iterdir())
        if path.is_dir() and not path.name.startswith("_") and (path / "__init__.py").exists()
    ]


def register_module_permissions(registry: PermissionRegistry | None = None) -> PermissionRegistry:
    """Register the standard permissions and those of every feature module.

    Each module may provide ``permissions.register_permissions(registry)``.
    Registration is explicit and runs in module name order.

    Args:
        registry: Registry to populate; defaults to the default registry

    Returns:
        The populated registry
    """
    registry = registry if registry is not None else get_registry()
    register_standard_permissions(registry)

    for name in discover_modules():
        module = import_module(f"flcore.modules.{name}")
        register = getattr(module, "register_permissions", None)
        if register is None:
            continue
        register(registry)
        logger.debug("module_permissions_registered", module=name)
    return registry
