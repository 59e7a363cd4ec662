import json

import pytest

from conftest import FakeModelClient, make_message, make_rule
from replyguard.services.analysis_service import (
    ConversationAnalyzer,
    build_analysis_prompt,
    detect_keyword_objections,
    keyword_analysis,
    merge_objections,
    parse_analysis_response,
)
from replyguard.services.llm import AuthFailureError, QuotaExhaustedError, RateLimitedError
from replyguard.services.policy_engine import PolicyEngine
from replyguard.services.translation_service import Translator

TENANT = "acme"

MODEL_ANALYSIS = json.dumps(
    {"intent": "Buying", "sentiment": "Neutral", "emotions": ["Urgency"], "objections": ["competitor"]}
)


def _analyzer(storage, model, retriever=None, translator=None):
    return ConversationAnalyzer(storage, model, retriever, PolicyEngine(), translator)


class TestParsing:
    def test_json_response(self):
        result = parse_analysis_response(f"Sure:\n{MODEL_ANALYSIS}")

        assert result.intent == "buying"
        assert result.intent_score == 0.8
        assert result.sentiment == "neutral"
        assert result.emotions == ["urgency"]
        assert result.objections == ["competitor"]

    def test_text_fallback(self):
        result = parse_analysis_response("The customer wants to purchase and seems happy")

        assert result.intent == "buying"
        assert result.sentiment == "positive"
        assert result.intent_score == 0.5
        assert result.sentiment_score == 0.5

    def test_invalid_json_uses_text_fallback(self):
        result = parse_analysis_response("{this is a complaint, negative}")

        assert result.intent == "complaint"
        assert result.sentiment == "negative"

    def test_keyword_analysis(self):
        result = keyword_analysis("customer: the price is terrible, shipping is slow")

        assert result.intent == "buying"
        assert result.sentiment == "negative"
        assert result.intent_score == 0.6
        assert result.objections == ["price", "delivery"]

    def test_prompt_with_context(self):
        prompt = build_analysis_prompt("customer: hi", "Pro plan is $49")

        assert prompt.startswith("Context:\nPro plan is $49\n\nAnalyze this customer conversation")
        assert prompt.endswith("Conversation:\ncustomer: hi")

    def test_objection_helpers(self):
        assert detect_keyword_objections("Too EXPENSIVE, is there an alternative?") == ["price", "competitor"]
        assert merge_objections(["Price", "trust"], ["price", "delivery"]) == ["price", "trust", "delivery"]


class TestConversationAnalyzer:
    @pytest.fixture
    def conversation(self, storage, conversation_id):
        storage.add_message(conversation_id, make_message("customer", "This is expensive compared to others"))
        return conversation_id

    def test_stores_model_analysis(self, storage, conversation):
        model = FakeModelClient(responses=[MODEL_ANALYSIS])

        result = _analyzer(storage, model).analyze(TENANT, conversation)

        assert result.intent == "buying"
        assert "price" in result.objections
        assert "competitor" in result.objections
        assert storage.saved_metadata == [result]

    def test_rules_filter_uncorroborated_objections(self, storage, conversation):
        storage.rules = [make_rule("guarantee", "block")]
        model = FakeModelClient(responses=[MODEL_ANALYSIS])

        result = _analyzer(storage, model).analyze(TENANT, conversation)

        assert result.objections == ["price"]

    def test_uses_top_three_knowledge_context(self, storage, conversation, retriever):
        model = FakeModelClient(responses=[MODEL_ANALYSIS])

        _analyzer(storage, model, retriever).analyze(TENANT, conversation)

        assert retriever.calls == [(TENANT, 3)]
        assert model.prompts[0].startswith("Context:\nPro plan costs $49 per month.")

    @pytest.mark.parametrize(
        "error",
        [
            QuotaExhaustedError("You exceeded your current quota", status_code=429),
            RateLimitedError("Too many requests", retry_after=None),
        ],
    )
    def test_quota_uses_keyword_fallback(self, storage, conversation, error):
        model = FakeModelClient(responses=[error])

        result = _analyzer(storage, model).analyze(TENANT, conversation)

        assert result.intent_score == 0.6
        assert result.objections == ["price"]
        assert len(storage.saved_metadata) == 1

    def test_other_model_errors_abort(self, storage, conversation):
        model = FakeModelClient(responses=[AuthFailureError("API key not valid", status_code=401)])

        assert _analyzer(storage, model).analyze(TENANT, conversation) is None
        assert storage.saved_metadata == []

    def test_translates_to_english_first(self, storage, conversation_id):
        storage.add_message(conversation_id, make_message("customer", "Es muy caro", language="es"))
        model = FakeModelClient(responses=["customer: It is very expensive", MODEL_ANALYSIS])

        _analyzer(storage, model, translator=Translator(model)).analyze(TENANT, conversation_id)

        assert model.prompts[0].startswith("Translate the following text from es to en")
        assert "customer: It is very expensive" in model.prompts[1]

    def test_retrieval_failure_continues(self, storage, conversation, retriever):
        model = FakeModelClient(responses=[MODEL_ANALYSIS])
        model.embedding_error = QuotaExhaustedError("quota exceeded", status_code=429)

        result = _analyzer(storage, model, retriever).analyze(TENANT, conversation)

        assert result is not None
        assert not model.prompts[0].startswith("Context:")

    def test_no_messages(self, storage, conversation_id):
        assert _analyzer(storage, FakeModelClient()).analyze(TENANT, conversation_id) is None

    def test_without_model_client(self, storage, conversation):
        result = _analyzer(storage, None).analyze(TENANT, conversation)

        assert result.intent_score == 0.6
        assert storage.saved_metadata == [result]
