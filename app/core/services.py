"""
Base service layer patterns.

- ServiceResult: result wrapper for expected failures
- BaseService: class-method service base with logging and transactions

Pattern:
    - ServiceResult for expected failures (validation, provider refusals)
    - Exceptions for unexpected failures (database errors, bugs)

Usage:
    from core.services import BaseService, ServiceResult

    class BookingIntentService(BaseService):
        @classmethod
        def create(cls, params) -> ServiceResult[BookingIntent]:
            with cls.atomic():
                booking = Booking.objects.create(...)
            cls.get_logger().info("Booking intent created")
            return ServiceResult.success(intent)

    result = BookingIntentService.create(params)
    if result.success:
        return Response(serializer(result.data).data, status=201)
    return Response(result.to_response(), status=400)
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

from django.db import transaction

if TYPE_CHECKING:
    from collections.abc import Generator
    from typing import Any

T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Standard result wrapper for service operations.

    Attributes:
        success: Whether the operation succeeded
        data: Result data if successful
        error: Error message if failed
        error_code: Machine-readable error code
        errors: Field-level errors for validation failures

    Usage:
        return ServiceResult.success(booking)
        return ServiceResult.failure("Calendly rejected the request", "INVALID_REQUEST")
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None
    errors: dict[str, list[str]] | None = field(default=None)

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        """Create a successful result."""
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
            errors: Field-level errors (for validation failures)
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
        Create a failed result from a caught exception.

        The error code falls back to the exception's own error_code
        (BaseApplicationError) and then to its class name.
        """
        return cls(
            success=False,
            error=getattr(exc, "message", None) or str(exc),
            error_code=error_code
            or getattr(exc, "error_code", None)
            or exc.__class__.__name__.upper(),
        )

    def to_response(self) -> dict[str, Any]:
        """
        Convert to API response format.

        Returns:
            Dict with success flag and data, or error details
        """
        if self.success:
            return {"success": True, "data": self.data}

        response: dict[str, Any] = {
            "success": False,
            "error": self.error,
        }
        if self.error_code:
            response["error_code"] = self.error_code
        if self.errors:
            response["errors"] = self.errors
        return response

    def __bool__(self) -> bool:
        return self.success


class BaseService:
    """
    Base class for service layer classes.

    Services are stateless: every entry point is a classmethod.

    Usage:
        class IdempotencyLedger(BaseService):
            @classmethod
            def commit(cls, delivery_id, outcome):
                with cls.atomic():
                    ...
                cls.get_logger().info("Delivery committed")
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Logger named after the service class for easy filtering."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Generator[None, None, None]:
        """
        Execute operations in a database transaction.

        Thin wrapper around django.db.transaction.atomic() that keeps
        transaction boundaries explicit in service code.
        """
        with transaction.atomic():
            yield
