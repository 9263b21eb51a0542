"""
Exceptions raised below the service layer.

Services report expected failures as ServiceResult.failure(). Helpers that
parse client input (inline image decoding, conversation target parsing)
raise ValidationError instead; the calling service converts it with
ServiceResult.from_exception(), so the error code reaches the client
unchanged.

Usage:
    from core.exceptions import ValidationError

    raise ValidationError(
        "Chat partner ID or group ID is required",
        error_code="MISSING_CONTEXT",
    )
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Error carrying a machine-readable code.

    Attributes:
        message: Text sent to the client
        error_code: Stable code clients can switch on
        details: Per-field messages, e.g. {"groupId": ["Not a valid id"]}
    """

    default_error_code: str = "APPLICATION_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


class ValidationError(BaseApplicationError):
    """Malformed or missing client input."""

    default_error_code = "VALIDATION_ERROR"
