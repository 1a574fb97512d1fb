"""Tests for s3input/lib/errors.py - structured exception hierarchy."""

import pytest

from s3input.lib.errors import (
    ConfigurationError,
    DecodeError,
    IngestError,
    ObjectFetchError,
    ObjectStoreError,
    PostProcessingError,
)


class TestIngestError:
    """Tests for base IngestError class."""

    def test_basic_message(self):
        """Test error with just a message."""
        error = IngestError("Something went wrong")
        assert str(error) == "Something went wrong"
        assert error.message == "Something went wrong"

    def test_with_location(self):
        """Bucket and key are rendered as an s3 URI."""
        error = IngestError("Read failed", bucket="logs", key="app/a.log")
        assert "[s3://logs/app/a.log]" in str(error)

    def test_with_details(self):
        """Test error with details dict."""
        error = IngestError("Listing failed", details={"prefix": "app/", "attempts": 3})
        assert "prefix: app/" in str(error)
        assert "attempts: 3" in str(error)

    def test_with_suggestion(self):
        """Test error with fix suggestion."""
        error = IngestError("Access denied", suggestion="Check the bucket policy")
        assert "Suggestion: Check the bucket policy" in str(error)

    def test_to_dict(self):
        """Test conversion to dictionary for structured logging."""
        error = IngestError("Failed", bucket="logs", key="a.log", details={"x": 1})
        assert error.to_dict() == {
            "error_type": "IngestError",
            "message": "Failed",
            "bucket": "logs",
            "key": "a.log",
            "details": {"x": 1},
            "suggestion": None,
        }


class TestSubclasses:
    """Tests for the specific error types."""

    @pytest.mark.parametrize(
        "cls",
        [ConfigurationError, ObjectStoreError, ObjectFetchError, DecodeError, PostProcessingError],
    )
    def test_hierarchy(self, cls):
        """Every error is an IngestError."""
        assert issubclass(cls, IngestError)

    def test_configuration_error(self):
        """Field and value are recorded as details."""
        error = ConfigurationError("Bad interval", field="interval", value=-5)
        assert error.field == "interval"
        assert error.details == {"field": "interval", "value": "-5"}

    def test_object_store_error_default_suggestion(self):
        """Store errors carry a connectivity hint by default."""
        cause = RuntimeError("timeout")
        error = ObjectStoreError("List failed", bucket="logs", operation="list", cause=cause)
        assert error.cause is cause
        assert error.details["operation"] == "list"
        assert error.details["cause_type"] == "RuntimeError"
        assert "credentials" in error.suggestion

    def test_fetch_error_operation(self):
        """Fetch errors default to the read operation."""
        error = ObjectFetchError("Gone", bucket="logs", key="a.log")
        assert error.operation == "read"
        assert isinstance(error, ObjectStoreError)

    def test_decode_error(self):
        """Decode errors name the codec."""
        error = DecodeError("Bad line", key="a.json", codec="json_lines", cause=ValueError("x"))
        assert error.details["codec"] == "json_lines"
        assert error.key == "a.json"

    def test_post_processing_error_mentions_duplicates(self):
        """The default hint warns that records may be re-emitted."""
        error = PostProcessingError("Move failed", key="a.log", action="move")
        assert error.action == "move"
        assert "duplicates" in error.suggestion
