"""
Provider error classification tests.
"""

import asyncio

import pytest

from voicenotes.errors import (
    AllProvidersExhaustedError,
    PermanentProviderError,
    TransientProviderError,
    classify_error,
)
from voicenotes.services.ai_clients import (
    AIClientConnectionError,
    AIClientOutputError,
    AIClientResponseError,
    AIClientTimeoutError,
)


@pytest.mark.parametrize(
    "error",
    [
        AIClientTimeoutError("read timeout"),
        asyncio.TimeoutError(),
        AIClientConnectionError("refused"),
        AIClientOutputError("not json"),
        AIClientResponseError("rate limited", status_code=429),
        AIClientResponseError("overloaded", status_code=529),
        AIClientResponseError("bad gateway", status_code=502),
        AIClientResponseError("no status"),
        RuntimeError("unexpected"),
    ],
)
def test_transient_errors(error):
    classified = classify_error(error, "deepgram")

    assert isinstance(classified, TransientProviderError)
    assert classified.retryable
    assert classified.provider == "deepgram"
    assert classified.original_error is error


@pytest.mark.parametrize(
    "error",
    [
        AIClientResponseError("bad request", status_code=400),
        AIClientResponseError("unauthorized", status_code=401),
        AIClientResponseError("forbidden", status_code=403),
        AIClientResponseError("too large", status_code=413),
        AIClientResponseError("unprocessable", status_code=422),
        ValueError("empty audio"),
    ],
)
def test_permanent_errors(error):
    classified = classify_error(error, "assemblyai")

    assert isinstance(classified, PermanentProviderError)
    assert not classified.retryable


def test_status_code_is_kept():
    classified = classify_error(AIClientResponseError("nope", status_code=401), "claude")

    assert classified.status_code == 401
    assert str(classified) == "claude: nope"


def test_already_classified_error_passes_through():
    error = PermanentProviderError("quota exceeded", provider="claude")

    assert classify_error(error, "other") is error


def test_exhausted_error_summarizes_attempts():
    errors = [
        TransientProviderError("timeout", provider="deepgram"),
        TransientProviderError("503", provider="assemblyai"),
    ]

    exhausted = AllProvidersExhaustedError(errors, attempts=2)

    assert exhausted.code == "ALL_PROVIDERS_FAILED"
    assert exhausted.attempts == 2
    assert "deepgram: timeout" in str(exhausted)
    assert exhausted.details["providers"] == ["deepgram", "assemblyai"]
