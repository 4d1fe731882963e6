"""Unit tests for service statuses and response payloads."""

import pytest

from flcore.core.errors import NotFoundError, ValidationError
from flcore.services import (
    PaginationControls,
    ServiceStatus,
    error_response_data,
    exception_response_data,
    success_response_data,
)


pytestmark = pytest.mark.unit


class TestErrorResponseData:
    """Tests for error payloads."""

    def test_plain_error(self):
        """Test an error without details."""
        assert error_response_data("no_permission", "denied") == {
            "_error": {"type": "no_permission", "message": "denied"}
        }

    def test_empty_message_dropped(self):
        """Test that empty messages are left out."""
        assert error_response_data("not_found", "") == {"_error": {"type": "not_found"}}

    def test_validation_details(self):
        """Test that per-field errors get messages and full messages."""
        data = error_response_data("creation_failure", "failed", {"title": ["can't be blank", "is too short"]})
        assert data["_error"]["details"] == {
            "messages": {"title": ["can't be blank", "is too short"]},
            "full_messages": ["title can't be blank", "title is too short"],
        }

    def test_other_mapping_copied(self):
        """Test that other mappings are copied as is."""
        data = error_response_data("x", "m", {"hint": "retry"})
        assert data["_error"]["details"] == {"hint": "retry"}


class TestExceptionResponseData:
    """Tests for error payloads built from exceptions."""

    def test_plain_exception(self):
        """Test that the exception message is reported."""
        data = exception_response_data("query_error", "failed", ValueError("boom"))
        assert data["_error"]["details"]["messages"] == {"exception": "boom"}
        assert data["_error"]["details"]["full_messages"] == ["boom"]

    def test_app_exception_message(self):
        """Test that library exceptions report their message."""
        data = exception_response_data("x", None, NotFoundError("gone"))
        assert data["_error"]["details"]["messages"] == {"exception": "gone"}
        assert "message" not in data["_error"]

    def test_validation_error_keeps_fields(self):
        """Test that validation errors keep their per-field messages."""
        exc = ValidationError(errors={"contents": ["invalid JSON contents"]})
        data = exception_response_data("update_failure", "failed", exc)
        assert data["_error"]["details"]["messages"] == {"contents": ["invalid JSON contents"]}


class TestSuccessAndPagination:
    """Tests for success payloads and pagination controls."""

    def test_success_response_data(self):
        """Test the success envelope."""
        assert success_response_data() == {"_status": {}}
        assert success_response_data("done", {"id": 1}) == {"_status": {"message": "done"}, "payload": {"id": 1}}

    def test_pagination_controls_aliases(self):
        """Test the pagination control names."""
        assert PaginationControls().model_dump(by_alias=True) == {"_c": 0, "_s": -1, "_p": 1}
        assert PaginationControls(_c=2, _s=10, _p=3).count == 2

    def test_status_codes(self):
        """Test the numeric status codes."""
        assert int(ServiceStatus.OK) == 200
        assert ServiceStatus(422) is ServiceStatus.UNPROCESSABLE_ENTITY
