"""Tests for samchat.core.exceptions."""

from __future__ import annotations

from samchat.core.exceptions import (
    ApplicationError,
    DecodeError,
    SamchatError,
    TransportError,
    ValidationError,
)


class TestSamchatError:
    def test_to_dict(self):
        error = SamchatError("boom", details={"k": "v"})
        assert error.to_dict() == {"error": "SamchatError", "message": "boom", "details": {"k": "v"}}
        assert str(error) == "boom"

    def test_subclasses_share_base(self):
        for error in (
            TransportError("t"),
            ApplicationError("a"),
            DecodeError("d"),
            ValidationError("v"),
        ):
            assert isinstance(error, SamchatError)


class TestTransportError:
    def test_details(self):
        error = TransportError("failed", status_code=502, url="http://node/api")
        assert error.status_code == 502
        assert error.details == {"status_code": 502, "url": "http://node/api"}

    def test_without_status(self):
        assert TransportError("timed out").details == {}


class TestApplicationError:
    def test_operation_recorded(self):
        error = ApplicationError("Unknown group", operation="AddGroupMember")
        assert error.operation == "AddGroupMember"
        assert error.to_dict()["details"] == {"operation": "AddGroupMember"}


class TestDecodeError:
    def test_payload_truncated(self):
        error = DecodeError("bad", operation="GetMessages", payload="x" * 500)
        assert error.details["operation"] == "GetMessages"
        assert error.details["payload"].endswith("...")
        assert len(error.details["payload"]) == 203


class TestValidationError:
    def test_field_and_value(self):
        error = ValidationError("Recipient is required", field="recipient", value="  ")
        assert error.field == "recipient"
        assert error.details == {"field": "recipient", "value": "  "}
