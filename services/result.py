"""
Result type for consistent error handling across services.

This module provides a simple Result[T] type that allows services to return
success/failure states without raising exceptions, so the HTTP front end
receives a stable `{success, data | error}` object and never a traceback.

Usage:
    # Returning success
    return Result.ok(data)  # Result with value
    return Result.ok()      # Result without value (for void operations)

    # Returning failure
    return Result.fail("Error message")
    return Result.fail("Error message", code="error_code")

    # Checking results
    if result.success:
        print(result.value)
    else:
        print(f"Error ({result.error_code}): {result.error}")
"""

from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from services import error_codes
from utils.serialization import to_jsonable

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    """
    A simple result type for service method return values.

    Attributes:
        success: Whether the operation succeeded
        value: The return value if successful (None if failed or void operation)
        error: Error message if failed (None if successful)
        error_code: Optional error code for programmatic error handling
    """

    success: bool
    value: T | None = None
    error: str | None = None
    error_code: str | None = None

    @classmethod
    def ok(cls, value: T | None = None) -> "Result[T]":
        """Create a successful result with an optional value."""
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, error: str, code: str | None = None) -> "Result[T]":
        """Create a failed result with an error message and optional error code."""
        return cls(success=False, error=error, error_code=code)

    @classmethod
    def from_error(cls, exc: Exception) -> "Result[T]":
        """Create a failed result from a LedgerError, keeping its code."""
        return cls.fail(str(exc), code=getattr(exc, "code", error_codes.INTERNAL_ERROR))

    def __bool__(self) -> bool:
        """Allow using Result in boolean context: if result: ..."""
        return self.success

    @property
    def retryable(self) -> bool:
        """True when the failure is transient and the same call may be retried."""
        return not self.success and self.error_code in error_codes.RETRYABLE_CODES

    def unwrap(self) -> T:
        """
        Get the value, raising ValueError if the result is a failure.

        Raises:
            ValueError: If the result is a failure
        """
        if not self.success:
            raise ValueError(f"Cannot unwrap failed result: {self.error}")
        return self.value  # type: ignore

    def unwrap_or(self, default: T) -> T:
        """Get the value or a default if the result is a failure."""
        return self.value if self.success else default  # type: ignore

    def map(self, fn: "callable[[T], Result]") -> "Result":
        """
        Chain operations on successful results.

        If this result is successful, applies fn to the value and returns its result.
        If this result is a failure, returns this failure unchanged.
        """
        if not self.success:
            return self
        return fn(self.value)

    def to_payload(self) -> dict[str, Any]:
        """Render the boundary object handed to the HTTP front end."""
        if self.success:
            return {"success": True, "data": to_jsonable(self.value)}
        return {
            "success": False,
            "error": {
                "code": self.error_code or error_codes.INTERNAL_ERROR,
                "message": self.error,
                "retryable": self.retryable,
            },
        }
