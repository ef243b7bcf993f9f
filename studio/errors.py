"""Tagged errors raised where a relay call fails.

Handlers map these to HTTP responses by ``status_code`` instead of
inspecting message text.
"""
from typing import Any, Optional


class RelayError(Exception):
    status_code = 500

    def __init__(self, message: str, details: Optional[Any] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.details = details
        if status_code is not None:
            self.status_code = status_code


class ValidationError(RelayError):
    status_code = 400


class ConfigurationError(RelayError):
    status_code = 500


class AuthError(RelayError):
    status_code = 401


class RateLimitError(RelayError):
    status_code = 429

    def __init__(self, message: str, retry_after: float = 1.0, details: Optional[Any] = None):
        super().__init__(message, details=details)
        self.retry_after = retry_after


class UpstreamTimeout(RelayError):
    status_code = 504


class UpstreamError(RelayError):
    status_code = 500


class EmptyImageResponse(RelayError):
    """Upstream answered successfully but returned no image URL."""
    status_code = 500
