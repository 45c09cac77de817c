"""
Error types for the HR Consultant MCP Server.

This module defines the ToolError base class and subclasses for domain-specific errors.
Tool handlers raise ToolError (or subclasses) instead of building JSON-RPC error
objects or tool results by hand; the dispatcher decides which tier an error
belongs to:

- InvalidArgumentError: argument validation failed, reported as a JSON-RPC error.
- DomainError (NotFoundError, FailedPreconditionError): domain failures,
  reported as a tool result with ``isError: true``.
- UnavailableError / InternalError: reported as JSON-RPC errors.

WidgetAssetError is not a ToolError: a missing widget artifact means the
deployment is incomplete and aborts startup.
"""

from __future__ import annotations

from typing import Any


class ToolError(Exception):
    """
    Base exception class for MCP tool errors.

    Attributes:
        error_code: Internal error code string (e.g., "invalid_argument",
            "not_found", "unavailable", "failed_precondition", "internal").
        message: Human-readable error message.
        details: Optional structured details (e.g., parameter values, context).

    Example:
        >>> raise ToolError(
        ...     error_code="not_found",
        ...     message="Consultant 42 not found.",
        ...     details={"consultantId": "42"},
        ... )
    """

    def __init__(
        self,
        error_code: str,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize a ToolError.

        Args:
            error_code: Internal error code string identifying the error category.
            message: Human-readable error message.
            details: Optional dictionary with structured error details.
        """
        super().__init__(message)
        self.error_code = error_code
        self.message = message
        self.details = details or {}

    def __repr__(self) -> str:
        """Return a detailed string representation."""
        return (
            f"{self.__class__.__name__}("
            f"error_code={self.error_code!r}, "
            f"message={self.message!r}, "
            f"details={self.details!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """
        Convert the error to a dictionary for serialization.

        Returns:
            Dictionary with error_code, message, and details.
        """
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class InvalidArgumentError(ToolError):
    """
    Error raised when a tool receives arguments that fail its schema.

    Raised before the handler runs, so the operation never executes.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize an InvalidArgumentError."""
        super().__init__(
            error_code="invalid_argument", message=message, details=details
        )


class DomainError(ToolError):
    """
    Base class for expected outcomes of a tool that ran but could not do
    what was asked.

    The dispatcher turns these into a normal tool result carrying
    ``isError: true``; they never become protocol errors.
    """


class NotFoundError(DomainError):
    """
    Error raised when a requested record does not exist.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize a NotFoundError."""
        super().__init__(error_code="not_found", message=message, details=details)


class FailedPreconditionError(DomainError):
    """
    Error raised when a precondition for the operation is not met.

    Used for records that exist but cannot be processed as requested
    (e.g., corrupted serialized attributes).
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize a FailedPreconditionError."""
        super().__init__(
            error_code="failed_precondition", message=message, details=details
        )


class UnavailableError(ToolError):
    """
    Error raised when the backing entity store cannot be reached.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize an UnavailableError."""
        super().__init__(error_code="unavailable", message=message, details=details)


class InternalError(ToolError):
    """
    Error raised for unexpected internal errors.

    This error maps to the "internal" error code and should be used for
    unexpected exceptions that should be logged with full stack traces.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize an InternalError."""
        super().__init__(error_code="internal", message=message, details=details)


class WidgetAssetError(Exception):
    """
    Raised when a widget's markup artifact cannot be found.

    Attributes:
        widget_id: The widget whose markup is missing.
        assets_dir: Directory that was searched.
    """

    def __init__(self, widget_id: str, assets_dir: str, message: str) -> None:
        super().__init__(message)
        self.widget_id = widget_id
        self.assets_dir = assets_dir
