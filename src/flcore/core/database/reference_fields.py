"""Object references stored as fingerprint columns."""

from typing import Any

import structlog
from sqlalchemy.orm import object_session

from flcore.core.database.base import Base
from flcore.core.database.locator import locator
from flcore.core.messages import message
from flcore.core.references import ByObject, reference_fingerprint, to_reference


logger = structlog.get_logger()


class ReferenceFieldsMixin:
    """Reference attributes backed by ``<key>_fingerprint`` columns.

    Assigning any reference form (object, fingerprint, global id...) to a
    reference attribute sets the fingerprint and keeps a loaded object;
    reading it loads the object through the session when needed.
    Unconvertible values are recorded in ``reference_errors`` for
    ``validate`` to report.

    Class attributes:
        reference_keys: The reference attributes
        locked_references: Attributes that cannot change once the object
            has an id
    """

    reference_keys = ()
    locked_references = ()

    @property
    def reference_errors(self) -> dict[str, str]:
        return self.__dict__.get("_reference_errors", {})

    def _set_reference(self, key: str, value: Any) -> None:
        if key in self.locked_references and getattr(self, "id", None) is not None:
            logger.debug("reference_locked", model=type(self).__name__, attribute=key)
            return

        errors = self.__dict__.setdefault("_reference_errors", {})
        errors.pop(key, None)
        self.__dict__[f"_{key}_object"] = None
        if value is None:
            setattr(self, f"{key}_fingerprint", None)
            return

        ref = to_reference(value)
        if ref is None and isinstance(value, Base):
            # Unsaved; _refresh_fingerprints sets the fingerprint once it has an id.
            self.__dict__[f"_{key}_object"] = value
            setattr(self, f"{key}_fingerprint", None)
            return
        if ref is None:
            errors[key] = message("validation.bad_reference", value=value)
            setattr(self, f"{key}_fingerprint", None)
            return
        if isinstance(ref, ByObject):
            self.__dict__[f"_{key}_object"] = ref.obj
        setattr(self, f"{key}_fingerprint", ref.to_fingerprint())

    def _get_reference(self, key: str) -> Any:
        obj = self.__dict__.get(f"_{key}_object")
        if obj is not None:
            return obj
        fp = getattr(self, f"{key}_fingerprint")
        session = object_session(self)
        if fp is None or session is None:
            return None
        obj = locator.find(session, fp)
        self.__dict__[f"_{key}_object"] = obj
        return obj

    def _refresh_fingerprints(self) -> None:
        """Set the fingerprints of objects that had no id when assigned."""
        for key in self.reference_keys:
            obj = self.__dict__.get(f"_{key}_object")
            if obj is not None and getattr(self, f"{key}_fingerprint") is None:
                setattr(self, f"{key}_fingerprint", reference_fingerprint(obj))
