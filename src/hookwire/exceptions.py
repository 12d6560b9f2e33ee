"""Hookwire exception hierarchy.

Delivery failures are deliberately absent from this module: a failed HTTP
attempt is a recorded outcome that drives the retry state machine, not an
exception. Everything here is surfaced to the caller immediately.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pydantic import ValidationError as PydanticValidationError


class HookwireError(Exception):
    """Base exception for all Hookwire errors.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code for API responses.
    """

    code: str = "hookwire_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
            }
        }


class ValidationError(HookwireError):
    """Invalid input to the registry or the bus.

    Raised for non-HTTPS URLs, unknown event types, malformed retry
    policies and reserved custom headers. Never retried.

    Attributes:
        field: The field that failed validation.
    """

    code: str = "validation_error"

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(f"{field}: {message}")

    @classmethod
    def from_pydantic(
        cls, error: PydanticValidationError, skip: Iterable[str] = ()
    ) -> ValidationError:
        """Build from the first error of a pydantic ValidationError.

        Location parts listed in ``skip`` (wrapper fields, union tags) are
        dropped from the reported field path.
        """
        first = error.errors()[0]
        skipped = set(skip)
        location = ".".join(str(p) for p in first["loc"] if str(p) not in skipped)
        return cls(location or "payload", first["msg"])

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "field": self.field,
                "message": self.message,
            }
        }


class NotFoundError(HookwireError):
    """Resource not found.

    Attributes:
        resource_type: Type of resource (e.g., "endpoint", "event").
        resource_id: ID of the missing resource.
    """

    code: str = "not_found"

    def __init__(self, resource_type: str, resource_id: str) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type} not found: {resource_id}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "resource_type": self.resource_type,
                "resource_id": self.resource_id,
                "message": self.message,
            }
        }


class ForbiddenError(HookwireError):
    """Requester is neither the owner of the resource nor an administrator."""

    code: str = "forbidden"


class StorageError(HookwireError):
    """A persistence operation failed."""

    code: str = "storage_error"


class AuditTrailError(StorageError):
    """An attempt or log row could not be written.

    Raised after the event state transition has completed, so the delivery
    itself is not repeated just because its audit write failed.
    """

    code: str = "audit_trail_error"


class ConfigurationError(HookwireError):
    """Required configuration is missing or invalid."""

    code: str = "configuration_error"


class AuthenticationError(HookwireError):
    """Authentication credentials are invalid or missing."""

    code: str = "authentication_error"
