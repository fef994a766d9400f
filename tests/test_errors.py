"""Tests for the failure taxonomy and HTTP error classification."""

from forge.errors import (
    SERVER_KEY_ERROR,
    FailureKind,
    ParseFailure,
    QuotaExceeded,
    ServerConfigurationFailure,
    ShapeValidationFailure,
    TransportFailure,
    classify_http_error,
    is_quota_message,
)


def test_to_failure_carries_kind():
    failure = ShapeValidationFailure("missing fields").to_failure()
    assert failure.kind is FailureKind.SHAPE
    assert failure.message == "missing fields"
    assert failure.raw_text is None
    assert failure.retryable


def test_parse_failure_keeps_raw_text():
    failure = ParseFailure("bad", raw_text="{oops", parser_message="Expecting value").to_failure()
    assert failure.raw_text == "{oops"


def test_server_configuration_is_not_retryable():
    assert not ServerConfigurationFailure("bad key").to_failure().retryable


def test_quota_markers():
    assert is_quota_message("Quota exceeded for project")
    assert is_quota_message("429 RESOURCE_EXHAUSTED")
    assert not is_quota_message("Too many requests for this resource.")


def test_classify_key_error():
    assert isinstance(classify_http_error(500, SERVER_KEY_ERROR, "story"), ServerConfigurationFailure)


def test_classify_quota():
    err = classify_http_error(429, "API quota likely exceeded for generate-content.", "story")
    assert isinstance(err, QuotaExceeded)
    assert str(err).startswith("API quota likely exceeded for story.")


def test_classify_other_status():
    err = classify_http_error(502, "", "world")
    assert isinstance(err, TransportFailure)
    assert str(err) == "Request for world failed with HTTP 502"
