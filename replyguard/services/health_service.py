from typing import Optional

import httpx

from replyguard.logging_config import get_logger
from replyguard.services.interfaces import KnowledgeRetriever
from replyguard.services.knowledge_service import RetrievalError
from replyguard.services.llm import ModelClient, ModelClientError

logger = get_logger("health_service")

OK = "ok"
NOT_CONFIGURED = "not_configured"
UNAVAILABLE = "unavailable"


def _probe(name: str, client) -> str:
    if client is None:
        return NOT_CONFIGURED
    try:
        client.health_check()
    except (ModelClientError, RetrievalError, httpx.HTTPError) as e:
        logger.warning(f"Upstream health check failed: {name}", extra={"context": {"error": str(e)[:200]}})
        return UNAVAILABLE
    return OK


def check_upstreams(model_client: Optional[ModelClient], retriever: Optional[KnowledgeRetriever]) -> dict:
    """Report the model API and vector store.

    An unavailable upstream marks the service degraded, not down: suggestions
    still answer, just without context or candidates.
    """
    checks = {
        "model": _probe("model", model_client),
        "knowledge": _probe("knowledge", retriever),
    }
    status = "degraded" if UNAVAILABLE in checks.values() else OK
    return {"status": status, **checks}
