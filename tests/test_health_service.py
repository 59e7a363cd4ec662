from conftest import FakeModelClient, FakeRetriever
from replyguard.services.health_service import check_upstreams
from replyguard.services.knowledge_service import RetrievalError
from replyguard.services.llm import AuthFailureError


class _BrokenModelClient(FakeModelClient):
    def health_check(self):
        raise AuthFailureError("bad key", status_code=403)


def test_all_upstreams_ok():
    assert check_upstreams(FakeModelClient(), FakeRetriever()) == {
        "status": "ok",
        "model": "ok",
        "knowledge": "ok",
    }


def test_missing_clients_are_not_configured():
    assert check_upstreams(None, None) == {
        "status": "ok",
        "model": "not_configured",
        "knowledge": "not_configured",
    }


def test_failing_upstreams_mark_degraded():
    result = check_upstreams(_BrokenModelClient(), FakeRetriever(error=RetrievalError("chroma down")))

    assert result == {"status": "degraded", "model": "unavailable", "knowledge": "unavailable"}
