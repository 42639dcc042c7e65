"""
bgresearch.core.errors — Exception hierarchy for the research pipeline.

These are raised *inside* components. Nothing here crosses the orchestrator
boundary unclassified: the orchestrator turns upstream errors into a
``Failure`` outcome, and the HTTP layer turns validation and configuration
errors into JSON bodies.
"""

from __future__ import annotations


class ResearchError(Exception):
    """Base class for all service errors."""


class QueryValidationError(ResearchError):
    """The request payload did not carry a usable query."""

    error = "Query is required"

    def __init__(
        self,
        field: str = "query",
        message: str = "Please provide a research query in the request body",
    ) -> None:
        super().__init__(message)
        self.field = field
        self.message = message


class ConfigurationError(ResearchError):
    """Deployment misconfiguration — fixable by the operator, not the client."""

    error = "Configuration error"

    def __init__(self, message: str = "Model provider connection not properly configured") -> None:
        super().__init__(message)
        self.message = message


class UpstreamHTTPError(ResearchError):
    """The provider answered with a non-2xx status."""

    def __init__(
        self,
        status_code: int,
        *,
        code: str | None = None,
        message: str = "",
        retry_after: str | None = None,
    ) -> None:
        super().__init__(f"Upstream HTTP {status_code}" + (f" ({code})" if code else ""))
        self.status_code = status_code
        self.code = code
        self.message = message
        self.retry_after = retry_after


class EmptyResponseError(ResearchError):
    """The provider answered 2xx but with no usable completion text."""
