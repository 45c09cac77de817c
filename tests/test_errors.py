"""
Tests for the errors module.

This test module validates:
- ToolError base class functionality
- Error subclasses and the DomainError grouping
- WidgetAssetError staying outside the ToolError hierarchy
"""

from __future__ import annotations

import pytest

from mcp_hr.errors import (
    DomainError,
    FailedPreconditionError,
    InternalError,
    InvalidArgumentError,
    NotFoundError,
    ToolError,
    UnavailableError,
    WidgetAssetError,
)

# =============================================================================
# Tests for ToolError Base Class
# =============================================================================


class TestToolError:
    """Tests for ToolError base class."""

    def test_init_with_all_args(self) -> None:
        """Test ToolError initialization with all arguments."""
        error = ToolError(
            error_code="test_error",
            message="Test error message",
            details={"key": "value"},
        )

        assert error.error_code == "test_error"
        assert error.message == "Test error message"
        assert error.details == {"key": "value"}

    def test_init_with_minimal_args(self) -> None:
        """Test ToolError initialization with minimal arguments."""
        error = ToolError(error_code="test_error", message="Test message")

        assert error.details == {}

    def test_str_representation(self) -> None:
        error = ToolError(error_code="test_error", message="Test error message")
        assert str(error) == "Test error message"

    def test_repr_representation(self) -> None:
        """Test ToolError repr representation."""
        error = ToolError(
            error_code="not_found",
            message="Consultant 42 not found.",
            details={"consultantId": "42"},
        )
        repr_str = repr(error)

        assert "ToolError" in repr_str
        assert "not_found" in repr_str
        assert "Consultant 42 not found." in repr_str
        assert "consultantId" in repr_str

    def test_to_dict(self) -> None:
        """Test ToolError to_dict serialization."""
        error = ToolError(
            error_code="test_error",
            message="Test message",
            details={"key": "value"},
        )

        assert error.to_dict() == {
            "error_code": "test_error",
            "message": "Test message",
            "details": {"key": "value"},
        }


# =============================================================================
# Tests for Error Subclasses
# =============================================================================


class TestErrorSubclasses:
    """Tests for the concrete error classes."""

    @pytest.mark.parametrize(
        ("error_class", "error_code"),
        [
            (InvalidArgumentError, "invalid_argument"),
            (NotFoundError, "not_found"),
            (FailedPreconditionError, "failed_precondition"),
            (UnavailableError, "unavailable"),
            (InternalError, "internal"),
        ],
    )
    def test_error_code(self, error_class: type[ToolError], error_code: str) -> None:
        error = error_class("Something happened", details={"id": "7"})

        assert error.error_code == error_code
        assert error.message == "Something happened"
        assert error.details == {"id": "7"}
        assert isinstance(error, ToolError)

    def test_domain_errors(self) -> None:
        """Test that only record-level failures are domain errors."""
        assert isinstance(NotFoundError("x"), DomainError)
        assert isinstance(FailedPreconditionError("x"), DomainError)
        assert not isinstance(InvalidArgumentError("x"), DomainError)
        assert not isinstance(UnavailableError("x"), DomainError)
        assert not isinstance(InternalError("x"), DomainError)

    def test_error_chain(self) -> None:
        """Test exception chaining."""

        def outer_function() -> None:
            try:
                raise ValueError("Original error")
            except ValueError as e:
                raise InternalError(
                    message="Wrapped error",
                    details={"original": str(e)},
                ) from e

        with pytest.raises(InternalError) as exc_info:
            outer_function()

        assert exc_info.value.details["original"] == "Original error"
        assert exc_info.value.__cause__ is not None


class TestWidgetAssetError:
    """Tests for WidgetAssetError."""

    def test_attributes(self) -> None:
        error = WidgetAssetError("hr-dashboard", "/srv/assets", "missing")

        assert error.widget_id == "hr-dashboard"
        assert error.assets_dir == "/srv/assets"
        assert str(error) == "missing"

    def test_not_a_tool_error(self) -> None:
        """A missing widget must never be reported as a tool failure."""
        assert not isinstance(WidgetAssetError("a", "b", "c"), ToolError)
