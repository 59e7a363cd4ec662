import json
import re
import time
from typing import Any, Callable, List, Optional, TypeVar

import httpx

from replyguard.logging_config import get_logger
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

logger = get_logger("llm.gemini")

T = TypeVar("T")

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

# Ordered from most to least specific.
QUOTA_PATTERNS = (
    "exceeded your current quota",
    "quota exceeded for metric",
    "resource_exhausted",
    "quota exceeded",
)
RETRY_HINT_PATTERN = re.compile(r"retry in ([\d.]+)s", re.IGNORECASE)
RETRY_DELAY_FIELD_PATTERN = re.compile(r"^([\d.]+)s$")
RETRY_HINT_BUFFER = 1.1
AUTH_STATUSES = {401, 403}


def _structured_details(body: str) -> list[dict]:
    try:
        data = json.loads(body)
    except (TypeError, ValueError):
        return []
    if not isinstance(data, dict) or not isinstance(data.get("error"), dict):
        return []
    details = data["error"].get("details") or []
    return [d for d in details if isinstance(d, dict)]


def _structured_quota_kind(body: str) -> Optional[str]:
    """Read google.rpc error details when present.

    Returns "quota" for per-day quota violations, "rate" for per-minute ones,
    None when the body carries no structured quota information.
    """
    quota_ids: list[str] = []
    for detail in _structured_details(body):
        if str(detail.get("@type", "")).endswith("QuotaFailure"):
            for violation in detail.get("violations") or []:
                quota_ids.append(str(violation.get("quotaId", "")))
    if not quota_ids:
        return None
    if any("perday" in quota_id.lower() for quota_id in quota_ids):
        return "quota"
    return "rate"


def is_quota_exhausted(body: str) -> bool:
    lowered = (body or "").lower()
    for pattern in QUOTA_PATTERNS:
        if pattern in lowered:
            logger.info("Quota pattern matched", extra={"context": {"pattern": pattern}})
            return True
    return False


def extract_retry_after(body: str) -> Optional[float]:
    """Seconds to wait before retrying a rate-limited call, with a 10% buffer."""
    for detail in _structured_details(body):
        if str(detail.get("@type", "")).endswith("RetryInfo"):
            match = RETRY_DELAY_FIELD_PATTERN.match(str(detail.get("retryDelay", "")))
            if match:
                return float(match.group(1)) * RETRY_HINT_BUFFER
    match = RETRY_HINT_PATTERN.search(body or "")
    if match:
        try:
            return float(match.group(1)) * RETRY_HINT_BUFFER
        except ValueError:
            return None
    return None


def classify_error(status_code: int, body: str) -> ModelClientError:
    """Map a non-200 answer onto the error taxonomy.

    Order: quota exhausted, rate limited, auth, other client errors, then
    everything else is treated as a transient upstream failure.
    """
    message = f"gemini API error: status {status_code}, body: {body}"

    structured = _structured_quota_kind(body) if status_code == 429 else None
    if structured == "quota":
        return QuotaExhaustedError(message, status_code=status_code, body=body)
    if structured == "rate":
        return RateLimitedError(message, status_code=status_code, body=body, retry_after=extract_retry_after(body))

    if is_quota_exhausted(body):
        if status_code == 429 and RETRY_HINT_PATTERN.search(body or ""):
            logger.warning(
                "Ambiguous 429: quota markers and retry hint both present, treating as quota",
                extra={"context": {"status": status_code}},
            )
        return QuotaExhaustedError(message, status_code=status_code, body=body)
    if status_code == 429:
        return RateLimitedError(message, status_code=status_code, body=body, retry_after=extract_retry_after(body))
    if status_code in AUTH_STATUSES:
        return AuthFailureError(message, status_code=status_code, body=body)
    if 400 <= status_code < 500:
        return ClientRequestError(message, status_code=status_code, body=body)
    return TransientUpstreamError(message, status_code=status_code, body=body)


def extract_text(data: dict) -> str:
    candidates = data.get("candidates") or []
    if not candidates or not isinstance(candidates[0], dict):
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    if not parts or not isinstance(parts[0], dict):
        return ""
    text = parts[0].get("text")
    return text if isinstance(text, str) else ""


def extract_embedding(data: dict) -> List[float]:
    values = (data.get("embedding") or {}).get("values") or []
    return [float(v) for v in values if isinstance(v, (int, float))]


class GeminiClient(ModelClient):
    """Google Gemini REST client with retry, backoff and error classification.

    Every call blocks its caller for the whole retry sequence: up to
    ``max_retries`` extra attempts with ``base_delay * 2**n`` backoff, or the
    vendor's retry hint for rate-limited answers.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        text_model: str = "gemini-2.5-flash",
        embedding_model: str = "embedding-001",
        timeout_seconds: float = 30.0,
        max_retries: int = 3,
        base_delay_seconds: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if not api_key:
            raise ValueError("Gemini API key is required")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.text_model = text_model
        self.embedding_model = embedding_model
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self.base_delay_seconds = base_delay_seconds
        self._sleep = sleep

    def health_check(self) -> None:
        try:
            with httpx.Client(timeout=self.timeout_seconds) as client:
                response = client.get(f"{self.base_url}/models", params={"key": self.api_key})
        except httpx.TransportError as exc:
            raise TransientUpstreamError(f"gemini health check failed: {exc}") from exc
        if response.status_code != 200:
            raise classify_error(response.status_code, response.text)

    def generate_text(self, prompt: str, context: str = "") -> str:
        full_prompt = prompt
        if context:
            full_prompt = f"Context: {context}\n\nQuestion: {prompt}"
        payload = {"contents": [{"parts": [{"text": full_prompt}]}]}
        url = f"{self.base_url}/models/{self.text_model}:generateContent"

        def request() -> str:
            data = self._post(url, payload)
            text = extract_text(data)
            if not text:
                raise MalformedModelOutputError("no text in response", status_code=200)
            return text

        return self._with_retries("generate_text", request)

    def generate_embedding(self, text: str) -> List[float]:
        payload = {
            "model": f"models/{self.embedding_model}",
            "content": {"parts": [{"text": text}]},
        }
        url = f"{self.base_url}/models/{self.embedding_model}:embedContent"

        def request() -> List[float]:
            data = self._post(url, payload)
            embedding = extract_embedding(data)
            if not embedding:
                raise MalformedModelOutputError("no embedding in response", status_code=200)
            return embedding

        return self._with_retries("generate_embedding", request)

    def _post(self, url: str, payload: dict) -> dict[str, Any]:
        try:
            with httpx.Client(timeout=self.timeout_seconds) as client:
                response = client.post(
                    url,
                    params={"key": self.api_key},
                    headers={"Content-Type": "application/json"},
                    json=payload,
                )
        except httpx.TransportError as exc:
            raise TransientUpstreamError(f"failed to call gemini API: {exc}") from exc

        if response.status_code != 200:
            raise classify_error(response.status_code, response.text)

        try:
            return response.json()
        except ValueError as exc:
            raise MalformedModelOutputError(f"failed to decode response: {exc}", status_code=200) from exc

    def _with_retries(self, operation: str, request: Callable[[], T]) -> T:
        last_error: Optional[ModelClientError] = None
        next_delay: Optional[float] = None

        for attempt in range(self.max_retries + 1):
            if attempt > 0:
                delay = next_delay if next_delay is not None else self.base_delay_seconds * (2 ** (attempt - 1))
                logger.info(
                    "Retrying model call",
                    extra={"context": {"operation": operation, "attempt": attempt, "delay_seconds": round(delay, 2)}},
                )
                self._sleep(delay)
            next_delay = None

            try:
                return request()
            except RateLimitedError as exc:
                last_error = exc
                if exc.retry_after is None or attempt >= self.max_retries:
                    logger.warning(
                        "Rate limited without usable retry hint or budget",
                        extra={"context": {"operation": operation, "attempt": attempt}},
                    )
                    raise
                logger.warning(
                    "Rate limited, waiting before retry",
                    extra={"context": {"operation": operation, "retry_after": round(exc.retry_after, 2)}},
                )
                next_delay = exc.retry_after
            except TransientUpstreamError as exc:
                last_error = exc
                logger.warning(
                    "Transient model failure",
                    extra={"context": {"operation": operation, "attempt": attempt, "error": str(exc)[:200]}},
                )
            except QuotaExhaustedError:
                logger.error("Quota exceeded, failing without retry", extra={"context": {"operation": operation}})
                raise

        assert last_error is not None
        raise TransientUpstreamError(
            f"{operation} failed after {self.max_retries + 1} attempts: {last_error}",
            status_code=last_error.status_code,
            body=last_error.body,
        ) from last_error
