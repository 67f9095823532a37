"""Exception types raised by the proxy services.

Each error knows the HTTP status it maps to, so routes stay thin and the
application-level handler in ``main`` renders them uniformly.
"""

from typing import Any, Optional

from .core import ErrorCode


class ProxyError(Exception):
    """Base class for errors that map directly to an HTTP response."""

    status_code: int = 500
    code: ErrorCode = ErrorCode.API_ERROR

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_body(self) -> Any:
        return {"error": self.message, "status": self.status_code}


class MissingParameter(ProxyError):
    """A required query or path parameter is absent."""

    status_code = 400
    code = ErrorCode.MISSING_PARAMETER

    def __init__(self, name: str) -> None:
        super().__init__(f"{name} is required")
        self.name = name


class InvalidParameter(ProxyError):
    status_code = 400
    code = ErrorCode.INVALID_PARAMETER


class UpstreamTimeout(ProxyError):
    """The upstream did not answer within its configured timeout."""

    status_code = 408
    code = ErrorCode.UPSTREAM_TIMEOUT


class UpstreamError(ProxyError):
    """The upstream failed or returned something unusable.

    When the upstream sent a response, its status code and body are kept so
    the caller can relay them verbatim; otherwise the status is 502.
    """

    status_code = 502
    code = ErrorCode.UPSTREAM_ERROR

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Any = None,
    ) -> None:
        super().__init__(message, status_code=status_code)
        self.body = body

    def to_body(self) -> Any:
        if isinstance(self.body, (dict, list)):
            return self.body
        if self.body:
            return {"error": self.body, "status": self.status_code}
        return super().to_body()


class QuotaExhausted(ProxyError):
    """Every key in the pool has reached its daily limit."""

    status_code = 429
    code = ErrorCode.QUOTA_EXHAUSTED


class UsageStoreError(Exception):
    """The usage counter store could not be read or written."""
