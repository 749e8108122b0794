"""
Self-validating scalars used at the service boundary.

Each value object is built through its constructor, which either returns a
valid instance or raises ValidationFailed. Instances are immutable and compare
by value.
"""
import re
import uuid
from typing import Any

from .errors import ValidationFailed

_EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
_TENANT_ID_RE = re.compile(r"^[a-zA-Z0-9_-]+$")
_MANUFACTURER_ID_RE = re.compile(r"^mfg_[a-zA-Z0-9_-]+$")

ALLOWED_CONTENT_TYPES = frozenset({
    "image/jpeg",
    "image/png",
    "image/webp",
    "image/avif",
    "application/pdf",
})

MAX_ID_LENGTH = 50


class _ValueObject:
    __slots__ = ("_value",)

    def __init__(self, raw: Any):
        object.__setattr__(self, "_value", self._validate(raw))

    @classmethod
    def _validate(cls, raw: Any) -> Any:
        raise NotImplementedError

    @property
    def value(self) -> Any:
        return self._value

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError(f"{self.__class__.__name__} is immutable")

    def __eq__(self, other: object) -> bool:
        return type(other) is type(self) and other._value == self._value

    def __hash__(self) -> int:
        return hash((type(self).__name__, self._value))

    def __str__(self) -> str:
        return str(self._value)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self._value!r})"


def _require_str(raw: Any, label: str) -> str:
    if not isinstance(raw, str):
        raise ValidationFailed(f"{label} must be a string")
    return raw


class Email(_ValueObject):
    __slots__ = ()

    @classmethod
    def _validate(cls, raw: Any) -> str:
        email = _require_str(raw, "Email")
        if not _EMAIL_RE.match(email):
            raise ValidationFailed("Invalid email format")
        return email


class TenantId(_ValueObject):
    __slots__ = ()

    @classmethod
    def _validate(cls, raw: Any) -> str:
        tenant_id = _require_str(raw, "Tenant ID")
        if not tenant_id or len(tenant_id) > MAX_ID_LENGTH:
            raise ValidationFailed("Tenant ID must be 1-50 characters")
        if not _TENANT_ID_RE.match(tenant_id):
            raise ValidationFailed(
                "Tenant ID can only contain alphanumeric characters, underscores, and hyphens"
            )
        return tenant_id


class RfqId(_ValueObject):
    __slots__ = ()

    @classmethod
    def _validate(cls, raw: Any) -> str:
        rfq_id = _require_str(raw, "RFQ ID")
        if not rfq_id or len(rfq_id) > MAX_ID_LENGTH:
            raise ValidationFailed("RFQ ID must be 1-50 characters")
        return rfq_id

    @classmethod
    def generate(cls) -> "RfqId":
        return cls(f"r_{uuid.uuid4().hex[:8].upper()}")


class ManufacturerId(_ValueObject):
    __slots__ = ()

    @classmethod
    def _validate(cls, raw: Any) -> str:
        manufacturer_id = _require_str(raw, "Manufacturer ID")
        if not manufacturer_id or len(manufacturer_id) > MAX_ID_LENGTH:
            raise ValidationFailed("Manufacturer ID must be 1-50 characters")
        if not _MANUFACTURER_ID_RE.match(manufacturer_id):
            raise ValidationFailed(
                "Manufacturer ID must start with 'mfg_' and contain only alphanumeric "
                "characters, underscores, and hyphens"
            )
        return manufacturer_id

    @classmethod
    def generate(cls) -> "ManufacturerId":
        return cls(f"mfg_{uuid.uuid4().hex[:8]}")


class ContentType(_ValueObject):
    __slots__ = ()

    @classmethod
    def _validate(cls, raw: Any) -> str:
        content_type = _require_str(raw, "Content type")
        if content_type not in ALLOWED_CONTENT_TYPES:
            raise ValidationFailed(f"Content type '{content_type}' is not allowed")
        return content_type


class FileSize(_ValueObject):
    __slots__ = ()

    MAX_SIZE_BYTES = 15 * 1024 * 1024

    @classmethod
    def _validate(cls, raw: Any) -> int:
        if isinstance(raw, bool) or not isinstance(raw, int):
            raise ValidationFailed("File size must be an integer number of bytes")
        if raw <= 0:
            raise ValidationFailed("File size cannot be zero")
        if raw > cls.MAX_SIZE_BYTES:
            raise ValidationFailed(
                f"File size {raw} exceeds maximum of {cls.MAX_SIZE_BYTES} bytes"
            )
        return raw


class MessageBody(_ValueObject):
    __slots__ = ()

    MAX_LENGTH = 8000

    @classmethod
    def _validate(cls, raw: Any) -> str:
        body = _require_str(raw, "Message body")
        if not body:
            raise ValidationFailed("Message body cannot be empty")
        if len(body) > cls.MAX_LENGTH:
            raise ValidationFailed(
                f"Message body exceeds maximum length of {cls.MAX_LENGTH} characters"
            )
        # Crude tag check, not a sanitizer: any body holding both brackets is refused.
        if "<" in body and ">" in body:
            raise ValidationFailed("HTML tags are not allowed in message body")
        return body
