"""Tests for error classification."""

import pytest

from config.error_policies import (
    APIError,
    AuthenticationError,
    ContentModerationError,
    GatewayTimeoutError,
    InsufficientCreditsError,
    MissingInputError,
    NetworkError,
    RateLimitError,
    ServiceOverloadedError,
    TerminalError,
    ValidationError,
    classify_http_status,
    classify_message,
)


class TestClassifyHttpStatus:
    """Test cases for classify_http_status()."""

    @pytest.mark.parametrize("status,expected", [
        (429, RateLimitError),
        (502, ServiceOverloadedError),
        (503, ServiceOverloadedError),
        (504, GatewayTimeoutError),
        (500, APIError),
        (401, AuthenticationError),
        (403, AuthenticationError),
        (422, ValidationError),
        (418, TerminalError),
    ])
    def test_status_mapping(self, status, expected):
        assert type(classify_http_status(status)) is expected

    def test_bad_request_with_moderation_body(self):
        error = classify_http_status(400, '{"error": "Image flagged as NSFW"}')

        assert isinstance(error, ContentModerationError)
        assert "HTTP 400" in error.message
        assert not error.retryable


class TestClassifyMessage:
    """Test cases for classify_message()."""

    @pytest.mark.parametrize("message,expected", [
        ("Your request was rejected by our content policy", ContentModerationError),
        ("Invalid aspect ratio", ValidationError),
        ("Invalid API key", AuthenticationError),
        ("Rate limit exceeded", RateLimitError),
        ("Model is overloaded", ServiceOverloadedError),
        ("Upstream timed out", GatewayTimeoutError),
        ("Connection reset by peer", NetworkError),
        ("Internal server error", APIError),
    ])
    def test_patterns(self, message, expected):
        error = classify_message(message)

        assert type(error) is expected
        assert error.message == message

    def test_default_used_when_nothing_matches(self):
        assert type(classify_message("the llama escaped")) is APIError
        assert type(classify_message("the llama escaped", default=TerminalError)) is TerminalError

    def test_empty_message(self):
        assert classify_message(None).message == "Unknown provider error"


class TestPreflightErrors:
    """Structured preflight error payloads."""

    def test_insufficient_credits_to_dict(self):
        data = InsufficientCreditsError(required=4, available=1.5).to_dict()

        assert data["error_code"] == "INSUFFICIENT_CREDITS"
        assert data["required"] == 4
        assert data["available"] == 1.5
        assert "costs 4 credits" in data["error_message"]
        assert data["retryable"] is False

    def test_missing_input_names_field(self):
        error = MissingInputError("second_image")

        assert error.to_dict()["field"] == "second_image"
        assert error.message == "Missing required input: second_image"
