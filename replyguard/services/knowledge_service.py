from typing import List, Optional

import httpx

from replyguard.logging_config import get_logger
from replyguard.services.interfaces import KnowledgeRetriever

logger = get_logger("knowledge_service")

PRODUCT_KNOWLEDGE_COLLECTION = "product_knowledge"
DEFAULT_TOP_K = 10


class RetrievalError(Exception):
    """Vector store could not answer a query."""


def distance_to_score(distance: Optional[float]) -> float:
    """Lower distance means higher similarity; maps [0, inf) onto (0, 1]."""
    if distance is None:
        return 1.0
    return 1.0 / (1.0 + float(distance))


def _first_row(data: dict, key: str) -> list:
    """Chroma answers one row per query embedding; we only send one."""
    if not isinstance(data, dict):
        raise TypeError(f"expected a JSON object, got {type(data).__name__}")
    rows = data.get(key) or [[]]
    if not isinstance(rows, list):
        raise TypeError(f"'{key}' is not a list")
    row = rows[0] or []
    if not isinstance(row, list):
        raise TypeError(f"'{key}' row is not a list")
    return row


class ChromaRetriever(KnowledgeRetriever):
    """Query side of the Chroma REST API. Collections are tenant-scoped by name."""

    def __init__(self, base_url: str = "http://localhost:8000", timeout_seconds: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds

    @staticmethod
    def collection_name(tenant_id: str, base_name: str) -> str:
        return f"{tenant_id}_{base_name}"

    def health_check(self) -> None:
        try:
            with httpx.Client(timeout=self.timeout_seconds) as client:
                response = client.get(f"{self.base_url}/api/v2/heartbeat")
        except httpx.HTTPError as exc:
            raise RetrievalError(f"chroma health check failed: {exc}") from exc
        if response.status_code != 200:
            raise RetrievalError(f"chroma health check returned status {response.status_code}")

    def query(self, collection: str, vector: List[float], top_k: int = DEFAULT_TOP_K) -> List[dict]:
        if top_k <= 0:
            top_k = DEFAULT_TOP_K

        try:
            with httpx.Client(timeout=self.timeout_seconds) as client:
                response = client.post(
                    f"{self.base_url}/api/v1/collections/{collection}/query",
                    json={
                        "query_embeddings": [vector],
                        "n_results": top_k,
                        "include": ["documents", "metadatas", "distances"],
                    },
                )
        except httpx.HTTPError as exc:
            raise RetrievalError(f"chroma query failed: {exc}") from exc

        if response.status_code != 200:
            logger.error(f"Chroma query error: {response.status_code} - {response.text}")
            raise RetrievalError(f"chroma query error: status {response.status_code}")

        try:
            data = response.json()
            documents = _first_row(data, "documents")
            distances = _first_row(data, "distances")
            metadatas = _first_row(data, "metadatas")
            ids = _first_row(data, "ids")

            results = []
            for i, text in enumerate(documents):
                results.append(
                    {
                        "id": ids[i] if i < len(ids) else None,
                        "text": text,
                        "score": distance_to_score(distances[i] if i < len(distances) else None),
                        "metadata": (metadatas[i] if i < len(metadatas) else None) or {},
                    }
                )
        except (ValueError, TypeError, AttributeError, IndexError) as exc:
            logger.error(f"Malformed Chroma query response: {exc}")
            raise RetrievalError(f"chroma query returned a malformed body: {exc}") from exc

        logger.info(f"Knowledge search: found {len(results)} results in '{collection}'")
        return results

    def retrieve_product_knowledge(self, tenant_id: str, vector: List[float], top_k: int = 5) -> List[dict]:
        return self.query(self.collection_name(tenant_id, PRODUCT_KNOWLEDGE_COLLECTION), vector, top_k)


def format_knowledge_context(results: List[dict]) -> str:
    """Join retrieved chunk texts into one context block."""
    return "\n\n".join(r["text"] for r in results if r.get("text"))
