"""
Input validation and sanitization utilities.
Used by the HTTP control surface before anything reaches the orchestrator.
"""

import base64
import binascii
import re
from enum import Enum
from typing import Optional, Type, TypeVar

from shared_utils.error_handler import ValidationError

E = TypeVar("E", bound=Enum)

_DATA_URL_PREFIX = re.compile(r"^data:[\w/+.-]+;base64,", re.IGNORECASE)


class InputValidator:
    """Utility class for input validation."""

    @staticmethod
    def validate_non_empty_string(value: str, field_name: str) -> str:
        """Validate non-empty string.

        Args:
            value: String to validate
            field_name: Name of field for error messages

        Returns:
            Validated (stripped) string

        Raises:
            ValidationError: If validation fails
        """
        if not isinstance(value, str):
            raise ValidationError(f"{field_name} must be a string")

        if not value or not value.strip():
            raise ValidationError(f"{field_name} cannot be empty")

        return value.strip()

    @staticmethod
    def validate_positive_int(value: int, field_name: str, allow_zero: bool = False) -> int:
        """Validate positive integer.

        Raises:
            ValidationError: If validation fails
        """
        if not isinstance(value, int) or isinstance(value, bool):
            raise ValidationError(f"{field_name} must be an integer")

        min_val = 0 if allow_zero else 1
        if value < min_val:
            raise ValidationError(f"{field_name} must be >= {min_val}")

        return value

    @staticmethod
    def validate_enum(value: str, enum_cls: Type[E], field_name: str) -> E:
        """Coerce *value* into *enum_cls* (case-insensitive).

        Raises:
            ValidationError: If the value is not a member
        """
        if isinstance(value, enum_cls):
            return value
        try:
            return enum_cls(str(value).strip().lower())
        except ValueError:
            allowed = ", ".join(m.value for m in enum_cls)
            raise ValidationError(
                f"{field_name} must be one of: {allowed}",
                context={field_name: value},
            )

    @staticmethod
    def decode_base64_payload(value: str, field_name: str, max_bytes: Optional[int] = None) -> bytes:
        """Decode a base64 string (a ``data:`` URL prefix is accepted).

        Raises:
            ValidationError: If the payload is empty, malformed or too large
        """
        value = InputValidator.validate_non_empty_string(value, field_name)
        value = _DATA_URL_PREFIX.sub("", value)
        try:
            decoded = base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError):
            raise ValidationError(f"{field_name} is not valid base64")

        if not decoded:
            raise ValidationError(f"{field_name} decoded to zero bytes")
        if max_bytes is not None and len(decoded) > max_bytes:
            raise ValidationError(
                f"{field_name} exceeds {max_bytes} bytes",
                context={"size": len(decoded)},
            )
        return decoded

    @staticmethod
    def sanitize_title(title: Optional[str], max_length: int = 120) -> Optional[str]:
        """Collapse whitespace and strip control characters from a session title."""
        if title is None:
            return None
        cleaned = re.sub(r"[\x00-\x1f\x7f]", "", title)
        cleaned = re.sub(r"\s+", " ", cleaned).strip()
        return cleaned[:max_length] or None
