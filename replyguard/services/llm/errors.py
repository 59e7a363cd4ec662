from typing import Optional


class ModelClientError(Exception):
    """Base class for failures talking to the external model API."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class TransientUpstreamError(ModelClientError):
    """5xx or network failure; retried up to the budget."""


class QuotaExhaustedError(ModelClientError):
    """Daily quota reached; terminal for the current period."""


class RateLimitedError(ModelClientError):
    """429 without quota markers; retried after the vendor-specified delay."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = 429,
        body: str = "",
        retry_after: Optional[float] = None,
    ):
        super().__init__(message, status_code=status_code, body=body)
        self.retry_after = retry_after


class AuthFailureError(ModelClientError):
    """401/403: the API key or project is misconfigured."""


class ClientRequestError(ModelClientError):
    """Other 4xx answers; the request itself is wrong."""


class MalformedModelOutputError(ModelClientError):
    """A successful answer that carries no usable text or embedding."""
