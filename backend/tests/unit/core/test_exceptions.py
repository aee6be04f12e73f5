"""
Tests for custom exception hierarchy.

WHY: Exceptions cross the action bus as (kind, message, details) and are
rebuilt on the other side, so:
1. Each class must carry the right kind and HTTP status
2. Sensitive context must never be serialized
3. exception_for must rebuild the matching class
"""

import pytest

from taskhub.core.exceptions import (
    AppException,
    ConflictError,
    ErrorKind,
    ForbiddenError,
    NotFoundError,
    ServiceUnavailableError,
    TokenExpiredError,
    UnauthorizedError,
    ValidationError,
    exception_for,
)


class TestAppException:
    """Test base AppException class."""

    def test_default_message(self):
        """Verify default message is used when none provided."""
        exc = AppException()
        assert exc.message == "An unexpected error occurred"
        assert exc.status_code == 500
        assert exc.kind == ErrorKind.INTERNAL

    def test_custom_message(self):
        exc = AppException(message="Custom error message")
        assert exc.message == "Custom error message"
        assert str(exc) == "Custom error message"

    def test_custom_status_code(self):
        """Verify custom status code overrides class default."""
        exc = AppException(status_code=418)
        assert exc.status_code == 418

    def test_to_dict_basic(self):
        """Verify exception serializes to dict correctly."""
        exc = NotFoundError(message="Project not found", id="abc")
        result = exc.to_dict()

        assert result["error"] == "NotFoundError"
        assert result["kind"] == "not_found"
        assert result["message"] == "Project not found"
        assert result["status_code"] == 404
        assert result["details"] == {"id": "abc"}

    def test_to_dict_filters_sensitive_data(self):
        """Verify sensitive fields are filtered from dict."""
        exc = AppException(
            message="Test error",
            password="secret123",
            token="abc123",
            api_key="key123",
            regular_field="visible",
        )
        result = exc.to_dict()

        assert result["details"] == {"regular_field": "visible"}

    def test_to_dict_without_context(self):
        assert AppException().to_dict()["details"] is None


class TestErrorKinds:
    """Each exception class maps to one error kind and status code."""

    @pytest.mark.parametrize(
        "exc_class,kind,status",
        [
            (ValidationError, ErrorKind.VALIDATION, 400),
            (UnauthorizedError, ErrorKind.UNAUTHORIZED, 401),
            (ForbiddenError, ErrorKind.FORBIDDEN, 403),
            (NotFoundError, ErrorKind.NOT_FOUND, 404),
            (ConflictError, ErrorKind.CONFLICT, 422),
            (ServiceUnavailableError, ErrorKind.UNAVAILABLE, 503),
        ],
    )
    def test_kind_and_status(self, exc_class, kind, status):
        exc = exc_class()
        assert exc.kind == kind
        assert exc.status_code == status

    def test_token_errors_are_unauthorized(self):
        """Expired tokens surface as 401 like any other bad credential."""
        exc = TokenExpiredError()
        assert isinstance(exc, UnauthorizedError)
        assert exc.kind == ErrorKind.UNAUTHORIZED


class TestExceptionFor:
    """Rebuilding exceptions received over the bus."""

    def test_rebuilds_matching_class(self):
        exc = exception_for(ErrorKind.FORBIDDEN, "No access", user="u1")
        assert isinstance(exc, ForbiddenError)
        assert exc.message == "No access"
        assert exc.context == {"user": "u1"}

    def test_internal_is_base_class(self):
        exc = exception_for(ErrorKind.INTERNAL, "Boom")
        assert type(exc) is AppException
        assert exc.status_code == 500

    def test_every_kind_is_mapped(self):
        for kind in ErrorKind:
            assert exception_for(kind, "x").kind == kind
