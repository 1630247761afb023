"""Typed failures raised by the extraction services.

Every error carries a stable ``error_code`` and a message that can be shown to
a user. Empty results (no suggestions, no stores) are not errors and are
returned as empty lists instead.
"""
from typing import Optional


class ExtractionError(Exception):
    error_code = "extraction_failed"

    def __init__(self, message: str, *, operation: Optional[str] = None, provider: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.provider = provider


class MissingCredentialError(ExtractionError):
    """A provider key is not configured. Raised before any network call."""

    error_code = "missing_credential"


class ProviderUnavailableError(ExtractionError):
    error_code = "provider_unavailable"

    def __init__(self, message: str, *, status_code: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.status_code = status_code


class MalformedResponseError(ExtractionError):
    error_code = "malformed_response"


class BothProvidersFailedError(ExtractionError):
    error_code = "both_providers_failed"

    def __init__(self, operation: str, primary_error: ExtractionError, fallback_error: ExtractionError):
        super().__init__(
            f"Both AI services failed for {operation}: "
            f"primary ({primary_error.error_code}): {primary_error.message}; "
            f"fallback ({fallback_error.error_code}): {fallback_error.message}",
            operation=operation,
        )
        self.primary_error = primary_error
        self.fallback_error = fallback_error


class UnsupportedFallbackError(ExtractionError):
    """The only provider able to serve this operation failed; retrying elsewhere will not help."""

    error_code = "unsupported_fallback"

    def __init__(self, operation: str, cause: ExtractionError):
        super().__init__(
            f"Could not complete {operation}: {cause.message}. "
            "This operation relies on a grounding tool only the primary provider offers.",
            operation=operation,
            provider=cause.provider,
        )
        self.cause = cause
