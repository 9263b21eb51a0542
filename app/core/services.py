"""
Base service layer patterns shared by every app.

- ServiceResult: explicit success/failure wrapper returned by services
- BaseService: logging and transaction helpers for service classes

Expected failures (validation, authorization, missing records) are returned
as ServiceResult.failure() with a machine-readable error code. Unexpected
failures (database errors, bugs) are raised and handled at the edge: the
WebSocket consumer logs them and answers with a generic error event, DRF
turns them into a 500.

Usage:
    from core.services import BaseService, ServiceResult

    class GroupService(BaseService):
        @classmethod
        def rename(cls, group, actor, name: str) -> ServiceResult[Group]:
            invalid = cls.validate_required(name=name)
            if invalid:
                return invalid

            if not group.is_admin(actor.id):
                return ServiceResult.failure(
                    "Only group admins can rename the group",
                    error_code="PERMISSION_DENIED",
                )

            with cls.atomic():
                group.name = name
                group.save(update_fields=["name", "updated_at"])

            cls.get_logger().info(f"Group {group.id} renamed by {actor.id}")
            return ServiceResult.success(group)
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

from django.db import transaction

from core.exceptions import BaseApplicationError

if TYPE_CHECKING:
    from collections.abc import Callable, Generator
    from typing import Any

T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Standard result wrapper for service operations.

    Attributes:
        success: Whether the operation succeeded
        data: Result data if successful
        error: Human-readable error message if failed
        error_code: Machine-readable error code for client handling
        errors: Field-level errors for validation failures

    Example:
        result = DeliveryService.send_direct(sender, receiver_id=7, text="hi")
        if not result:
            await self.send_error(result.error)
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None
    errors: dict[str, list[str]] | None = field(default=None)

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        """Create a successful result carrying ``data``."""
        return cls(success=True, data=data)

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
        errors: dict[str, list[str]] | None = None,
    ) -> ServiceResult[T]:
        """
        Create a failed result.

        Args:
            error: Human-readable error message
            error_code: Machine-readable error code
            errors: Field-level errors (validation failures)
        """
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            errors=errors,
        )

    @classmethod
    def from_exception(
        cls, exc: Exception, error_code: str | None = None
    ) -> ServiceResult[T]:
        """
        Create a failed result from an exception.

        Application errors keep their own message and error code; any other
        exception falls back to its class name as the code.
        """
        if isinstance(exc, BaseApplicationError):
            return cls(
                success=False,
                error=exc.message,
                error_code=error_code or exc.error_code,
                errors=exc.details or None,
            )
        return cls(
            success=False,
            error=str(exc),
            error_code=error_code or exc.__class__.__name__.upper(),
        )

    def map(self, func: Callable[[T], Any]) -> ServiceResult:
        """Apply ``func`` to the data of a successful result."""
        if self.success and self.data is not None:
            return ServiceResult.success(func(self.data))
        return self

    def __bool__(self) -> bool:
        return self.success


class BaseService:
    """
    Base class for stateless service classes.

    Services expose classmethods only. Use ServiceResult for expected
    failures and let unexpected exceptions propagate.
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Logger named after the concrete service class."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Generator[None, None, None]:
        """
        Run the enclosed block in a database transaction.

        Thin wrapper around ``transaction.atomic()`` so transaction
        boundaries read explicitly in service code.
        """
        with transaction.atomic():
            yield

    @classmethod
    def handle_exception(
        cls,
        exc: Exception,
        context: str = "",
        log_level: int = logging.ERROR,
    ) -> ServiceResult:
        """
        Log an exception and convert it to a failed ServiceResult.

        Example:
            try:
                url = store_inline_image(image)
            except ValidationError as e:
                return cls.handle_exception(e, "image upload", logging.WARNING)
        """
        message = f"{context}: {exc}" if context else str(exc)
        cls.get_logger().log(
            log_level, message, exc_info=log_level >= logging.ERROR
        )
        return ServiceResult.from_exception(exc)

    @classmethod
    def validate_required(cls, **kwargs) -> ServiceResult | None:
        """
        Fail when any keyword value is None or a blank string.

        Returns a VALIDATION_ERROR result listing the missing fields, or None
        when every value is present.
        """
        errors = {}
        for field_name, value in kwargs.items():
            if value is None or (isinstance(value, str) and not value.strip()):
                errors[field_name] = ["This field is required."]

        if errors:
            return ServiceResult.failure(
                "Required fields missing",
                error_code="VALIDATION_ERROR",
                errors=errors,
            )
        return None
