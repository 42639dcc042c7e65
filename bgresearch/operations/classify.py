"""
bgresearch.operations.classify — Upstream failure classification.

The single place where an exception from the upstream call becomes a
``FailureKind``. Decisions are made on exception *types*, HTTP status codes
and provider error codes, never on message text.
"""

from __future__ import annotations

import httpx

from bgresearch.core.errors import EmptyResponseError, UpstreamHTTPError
from bgresearch.core.models import Failure, FailureKind

# Provider error codes (OpenAI error envelope ``error.code`` / ``error.type``)
_QUOTA_CODES = frozenset({"insufficient_quota", "rate_limit_exceeded"})
_AUTH_CODES = frozenset({"invalid_api_key", "invalid_organization", "authentication_error"})

_QUOTA_STATUS = frozenset({429})
_AUTH_STATUS = frozenset({401, 403})
_TIMEOUT_STATUS = frozenset({408})

FAILURE_MESSAGES: dict[FailureKind, str] = {
    FailureKind.QUOTA_EXCEEDED: "Model provider quota exceeded. Please try again later.",
    FailureKind.AUTH_CONFIGURATION: "Model provider configuration error",
    FailureKind.TIMEOUT: "Request timed out. Please try again.",
    FailureKind.UPSTREAM_UNAVAILABLE: "Model provider is unavailable. Please try again later.",
    FailureKind.EMPTY_RESPONSE: "Model provider returned an empty response. Please try again.",
    FailureKind.UNKNOWN: "An error occurred while processing your request",
}


def classify_kind(exc: BaseException) -> FailureKind:
    """Map an exception raised at the upstream boundary to a ``FailureKind``."""
    if isinstance(exc, UpstreamHTTPError):
        # Provider codes win over status: OpenAI answers quota exhaustion
        # with 429 and bad keys with 401, but gateways are not consistent.
        if exc.code in _QUOTA_CODES:
            return FailureKind.QUOTA_EXCEEDED
        if exc.code in _AUTH_CODES:
            return FailureKind.AUTH_CONFIGURATION
        if exc.status_code in _QUOTA_STATUS:
            return FailureKind.QUOTA_EXCEEDED
        if exc.status_code in _AUTH_STATUS:
            return FailureKind.AUTH_CONFIGURATION
        if exc.status_code in _TIMEOUT_STATUS:
            return FailureKind.TIMEOUT
        return FailureKind.UPSTREAM_UNAVAILABLE

    if isinstance(exc, EmptyResponseError):
        return FailureKind.EMPTY_RESPONSE

    # httpx.TimeoutException must be checked before TransportError (its parent)
    if isinstance(exc, (httpx.TimeoutException, TimeoutError)):
        return FailureKind.TIMEOUT

    if isinstance(exc, httpx.TransportError):
        return FailureKind.UPSTREAM_UNAVAILABLE

    return FailureKind.UNKNOWN


def classify_failure(exc: BaseException) -> Failure:
    """Build the ``Failure`` outcome for an upstream exception."""
    kind = classify_kind(exc)
    retry_after = None
    if kind is FailureKind.QUOTA_EXCEEDED and isinstance(exc, UpstreamHTTPError):
        retry_after = exc.retry_after
    return Failure(kind=kind, message=FAILURE_MESSAGES[kind], retry_after=retry_after)
