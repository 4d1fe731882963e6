"""Object lookup by reference."""

from collections.abc import Iterable
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from flcore.core.database.base import Base
from flcore.core.errors import NotFoundError
from flcore.core.references import ByObject, class_matches, to_reference


logger = structlog.get_logger()


class ModelLocator:
    """Resolves class names and loads objects from references.

    Class names are looked up among the classes mapped on ``base``'s
    registry, so any model can be found from its fingerprint.
    """

    def __init__(self, base: type[Base] = Base) -> None:
        self.base = base

    def resolve_class(self, class_name: str | None) -> type | None:
        """Get the mapped class called ``class_name``.

        Returns:
            The mapped class, or None if no mapped class has that name
        """
        if not class_name:
            return None
        for mapper in self.base.registry.mappers:
            if mapper.class_.__name__ == class_name:
                return mapper.class_
        return None

    def find(self, session: Session, ref: Any, cls: Any = None) -> Any | None:
        """Load the object named by a reference.

        Args:
            session: Database session
            ref: Any reference form accepted by ``to_reference``
            cls: Expected class; required for bare ids

        Returns:
            The object, or None if it cannot be resolved or loaded
        """
        r = to_reference(ref)
        if r is None:
            return None
        if isinstance(r, ByObject):
            return r.obj if r.identifier(cls) is not None else None

        class_name = r.class_name
        if class_name is None:
            target = self.resolve_class(cls) if isinstance(cls, str) else cls
        else:
            if not class_matches(class_name, cls):
                return None
            target = self.resolve_class(class_name)
        if target is None:
            logger.debug("locator_unknown_class", class_name=class_name or cls)
            return None
        return session.get(target, r.id)

    def get(self, session: Session, ref: Any, cls: Any = None) -> Any:
        """Load the object named by a reference, raising if missing.

        Raises:
            NotFoundError: If the reference does not resolve to an object
        """
        obj = self.find(session, ref, cls)
        if obj is None:
            raise NotFoundError(resource=getattr(cls, "__name__", cls), resource_id=str(ref))
        return obj

    def find_all(self, session: Session, refs: Iterable[Any], cls: Any = None) -> list[Any]:
        """Load every resolvable object in ``refs``, one query per class.

        Loaded objects in ``refs`` are passed through; unresolvable
        references are dropped.
        """
        objects: list[Any] = []
        by_class: dict[str, list[int]] = {}
        for ref in refs:
            r = to_reference(ref)
            if r is None:
                continue
            if isinstance(r, ByObject):
                if r.identifier(cls) is not None:
                    objects.append(r.obj)
                continue
            class_name = r.class_name or (cls if isinstance(cls, str) else getattr(cls, "__name__", None))
            if class_name is None or not class_matches(class_name, cls):
                continue
            by_class.setdefault(class_name, []).append(r.id)

        for class_name, ids in by_class.items():
            target = self.resolve_class(class_name)
            if target is None:
                continue
            objects.extend(session.scalars(select(target).where(target.id.in_(ids))).all())
        return objects


locator = ModelLocator()
