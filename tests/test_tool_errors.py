"""Tests for the error response system."""

from __future__ import annotations

import pytest

from scopeassist.ai.tools.errors import (
    DuplicateToolError,
    ErrorCode,
    InvalidParameterError,
    MissingParameterError,
    ProviderRejectedError,
    ToolConfigurationError,
    ToolError,
    ToolExecutionFailedError,
    ToolTimeoutError,
    UnknownToolError,
    sanitize_message,
)


class TestToolError:
    """Tests for base ToolError class."""

    def test_create_basic_error(self) -> None:
        error = ToolError(error_code="test_error", message="Something went wrong")

        assert error.to_dict() == {"error": "test_error", "message": "Something went wrong"}
        assert str(error) == "[test_error] Something went wrong"

    def test_details_and_suggestion_included(self) -> None:
        error = ToolError(
            error_code="test_error",
            message="Bad",
            details={"line": 3},
            suggestion="Try again",
        )

        data = error.to_dict()

        assert data["details"] == {"line": 3}
        assert data["suggestion"] == "Try again"

    def test_can_be_raised(self) -> None:
        with pytest.raises(ToolError, match="Boom"):
            raise ToolError(error_code="x", message="Boom")


class TestSubclasses:
    def test_unknown_tool_names_the_tool(self) -> None:
        error = UnknownToolError(tool_name="frobnicate")

        data = error.to_dict()

        assert data["error"] == ErrorCode.UNKNOWN_TOOL
        assert data["tool"] == "frobnicate"
        assert "frobnicate" in data["message"]

    def test_parameter_errors_report_parameter(self) -> None:
        invalid = InvalidParameterError(message="not an int", parameter="count")
        missing = MissingParameterError(parameter="menuPath")

        assert invalid.to_dict()["parameter"] == "count"
        assert invalid.error_code == ErrorCode.INVALID_PARAMETER
        assert missing.to_dict()["parameter"] == "menuPath"
        assert missing.error_code == ErrorCode.MISSING_PARAMETER

    def test_timeout_reports_seconds(self) -> None:
        error = ToolTimeoutError(timeout=2.5)

        assert error.to_dict()["timeout_seconds"] == 2.5
        assert error.error_code == ErrorCode.TIMEOUT

    def test_execution_failed_from_exception(self) -> None:
        error = ToolExecutionFailedError.from_exception(RuntimeError("missing\n  key"))

        assert error.error_code == ErrorCode.EXECUTION_FAILED
        assert "\n" not in error.message
        assert error.details == {"type": "RuntimeError"}


class TestSanitizeMessage:
    def test_collapses_whitespace(self) -> None:
        assert sanitize_message("line one\n\tline two  ") == "line one line two"

    def test_truncates_long_text(self) -> None:
        text = sanitize_message("x" * 500, limit=20)

        assert len(text) == 20
        assert text.endswith("...")

    def test_empty_message(self) -> None:
        assert sanitize_message(None) == "unspecified error"


class TestConfigurationErrors:
    def test_duplicate_lists_names(self) -> None:
        error = DuplicateToolError("Echo Tools", ["echo", "add"])

        assert isinstance(error, ProviderRejectedError)
        assert isinstance(error, ToolConfigurationError)
        assert error.names == ("echo", "add")
        assert "add, echo" in str(error)

    def test_configuration_errors_are_not_dispatch_errors(self) -> None:
        assert not issubclass(ProviderRejectedError, ToolError)
