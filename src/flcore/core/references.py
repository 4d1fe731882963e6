"""Object references: fingerprints, global ids and the Reference union.

A reference names a persistent object without necessarily loading it.
Four textual forms are understood:

- an integer id, or a string of digits (class implied by context);
- a fingerprint, ``ClassName/id``;
- a global id, ``gid://app/ClassName/id``;
- a signed global id, a JWT whose subject is a global id.

``to_reference()`` turns any of those (or a model instance, or a
``{"type": ..., "id": ...}`` dict) into one of ``ById``, ``ByFingerprint``
or ``ByObject``; everything downstream works on those three types.
"""

import re
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any
from urllib.parse import urlparse

from jose import JWTError, jwt

from flcore.config import settings
from flcore.core.constants import GLOBAL_ID_SCHEME, SIGNED_ID_PURPOSE


_DIGITS = re.compile(r"^[0-9]+$")


def _class_name(cls_or_name: Any) -> str:
    if isinstance(cls_or_name, str):
        return cls_or_name
    if isinstance(cls_or_name, type):
        return cls_or_name.__name__
    return type(cls_or_name).__name__


def class_matches(class_name: str | None, expected: Any) -> bool:
    """Check that ``class_name`` names ``expected`` or one of its subclasses.

    Args:
        class_name: Class name from a reference
        expected: A class, a class name, or None (anything matches)

    Returns:
        True if the reference class is acceptable
    """
    if expected is None:
        return True
    if class_name is None:
        return False
    if isinstance(expected, str):
        return class_name == expected

    pending = [expected]
    while pending:
        cls = pending.pop()
        if cls.__name__ == class_name:
            return True
        pending.extend(cls.__subclasses__())
    return False


def fingerprint(cls_or_name: Any, id: Any) -> str:  # noqa: A002
    """Build the ``ClassName/id`` fingerprint for a class and id."""
    return f"{_class_name(cls_or_name)}/{id}"


def split_fingerprint(fp: Any, cls: Any = None) -> tuple[str | None, int | None]:
    """Split a fingerprint into its class name and integer id.

    Args:
        fp: The fingerprint string
        cls: If given, the class (or class name) the fingerprint must name

    Returns:
        ``(class_name, id)``, or ``(None, None)`` if the fingerprint is
        malformed, the id is not numeric, or the class does not match

    Examples:
        >>> split_fingerprint("Comment/12")
        ('Comment', 12)
        >>> split_fingerprint("Comment/12", "Actor")
        (None, None)
    """
    if not isinstance(fp, str):
        return None, None
    parts = fp.split("/")
    if len(parts) != 2 or not parts[0] or not _DIGITS.match(parts[1]):
        return None, None
    class_name, id_part = parts
    if cls is not None and not class_matches(class_name, cls):
        return None, None
    return class_name, int(id_part)


def global_id(cls_or_name: Any, id: Any, app: str | None = None) -> str:  # noqa: A002
    """Build the ``gid://app/ClassName/id`` global identifier."""
    return f"{GLOBAL_ID_SCHEME}://{app or settings.global_id_app}/{fingerprint(cls_or_name, id)}"


def parse_global_id(gid: Any) -> tuple[str | None, int | None]:
    """Parse a global id into its class name and id.

    Returns:
        ``(class_name, id)``, or ``(None, None)`` for malformed ids
    """
    if not isinstance(gid, str) or not gid.startswith(f"{GLOBAL_ID_SCHEME}://"):
        return None, None
    try:
        uri = urlparse(gid)
    except ValueError:
        return None, None
    if not uri.netloc:
        return None, None
    return split_fingerprint(uri.path.lstrip("/"))


def sign_global_id(
    obj_or_gid: Any,
    expires_in: timedelta | None = None,
    purpose: str = SIGNED_ID_PURPOSE,
) -> str:
    """Create a signed, expiring global id.

    Args:
        obj_or_gid: A model instance or a global id string
        expires_in: Lifetime; defaults to ``settings.signed_id_expire_minutes``
        purpose: Purpose tag that ``locate_signed`` must match

    Returns:
        Encoded JWT whose subject is the global id
    """
    gid = obj_or_gid if isinstance(obj_or_gid, str) else obj_or_gid.to_global_id()
    now = datetime.now(UTC)
    expire = now + (expires_in or timedelta(minutes=settings.signed_id_expire_minutes))
    claims = {"sub": gid, "pur": purpose, "iat": now, "exp": expire}
    return jwt.encode(claims, settings.secret_key, algorithm=settings.signed_id_algorithm)


def locate_signed(token: Any, purpose: str = SIGNED_ID_PURPOSE) -> tuple[str | None, int | None]:
    """Decode a signed global id.

    Returns:
        ``(class_name, id)``, or ``(None, None)`` if the token is invalid,
        expired, or was signed for a different purpose
    """
    if not isinstance(token, str):
        return None, None
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.signed_id_algorithm])
    except JWTError:
        return None, None
    if payload.get("pur") != purpose:
        return None, None
    return parse_global_id(payload.get("sub"))


@dataclass(frozen=True)
class ById:
    """Reference by bare id; the class comes from context."""

    id: int

    @property
    def class_name(self) -> str | None:
        return None

    def identifier(self, cls: Any = None) -> int | None:
        return self.id

    def to_fingerprint(self, cls: Any = None) -> str | None:
        return fingerprint(cls, self.id) if cls is not None else None


@dataclass(frozen=True)
class ByFingerprint:
    """Reference by class name and id."""

    class_name: str
    id: int

    def identifier(self, cls: Any = None) -> int | None:
        return self.id if class_matches(self.class_name, cls) else None

    def to_fingerprint(self, cls: Any = None) -> str | None:
        return fingerprint(self.class_name, self.id) if class_matches(self.class_name, cls) else None


@dataclass(frozen=True)
class ByObject:
    """Reference to a loaded object."""

    obj: Any

    @property
    def class_name(self) -> str:
        return type(self.obj).__name__

    @property
    def id(self) -> Any:
        return getattr(self.obj, "id", None)

    def identifier(self, cls: Any = None) -> int | None:
        if self.id is None:
            return None
        if cls is not None and not isinstance(cls, str):
            return self.id if isinstance(self.obj, cls) else None
        return self.id if class_matches(self.class_name, cls) else None

    def to_fingerprint(self, cls: Any = None) -> str | None:
        if self.identifier(cls) is None:
            return None
        return fingerprint(self.obj, self.id)


Reference = ById | ByFingerprint | ByObject


def to_reference(value: Any) -> Reference | None:
    """Normalize any supported reference form to a ``Reference``.

    Args:
        value: Integer id, digit string, fingerprint, global id, signed
            global id, ``{"type", "id"}`` dict, model instance or Reference

    Returns:
        The normalized reference, or None if ``value`` cannot be converted
    """
    if isinstance(value, ById | ByFingerprint | ByObject):
        return value
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return ById(value)
    if isinstance(value, str):
        if _DIGITS.match(value):
            return ById(int(value))
        if value.startswith(f"{GLOBAL_ID_SCHEME}://"):
            class_name, id_ = parse_global_id(value)
        elif "/" in value:
            class_name, id_ = split_fingerprint(value)
        else:
            class_name, id_ = locate_signed(value)
        return ByFingerprint(class_name, id_) if class_name is not None else None
    if isinstance(value, dict):
        type_name = value.get("type")
        id_value = value.get("id")
        if isinstance(type_name, str) and id_value is not None and _DIGITS.match(str(id_value)):
            return ByFingerprint(type_name, int(id_value))
        return None
    if getattr(value, "id", None) is not None:
        return ByObject(value)
    return None


def reference_fingerprint(value: Any, cls: Any = None) -> str | None:
    """Return the fingerprint a reference names, or None."""
    ref = to_reference(value)
    return ref.to_fingerprint(cls) if ref is not None else None


def reference_identifier(value: Any, cls: Any = None) -> int | None:
    """Return the id a reference names, checked against ``cls``, or None."""
    ref = to_reference(value)
    return ref.identifier(cls) if ref is not None else None
