from replyguard.services.llm.base import ModelClient
from replyguard.services.llm.errors import (
    AuthFailureError,
    ClientRequestError,
    MalformedModelOutputError,
    ModelClientError,
    QuotaExhaustedError,
    RateLimitedError,
    TransientUpstreamError,
)
from replyguard.services.llm.gemini_provider import GeminiClient

__all__ = [
    "ModelClient",
    "GeminiClient",
    "ModelClientError",
    "TransientUpstreamError",
    "QuotaExhaustedError",
    "RateLimitedError",
    "AuthFailureError",
    "ClientRequestError",
    "MalformedModelOutputError",
]
