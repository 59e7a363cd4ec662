import json
from typing import Iterable, List, Optional, Sequence

import httpx

from replyguard.logging_config import ConversationLogger, conversation_logger, get_logger
from replyguard.models import Message
from replyguard.services.interfaces import AnalysisResult, KnowledgeRetriever, Storage
from replyguard.services.knowledge_service import RetrievalError, format_knowledge_context
from replyguard.services.llm import ModelClient, ModelClientError, QuotaExhaustedError, RateLimitedError
from replyguard.services.policy_engine import PolicyEngine
from replyguard.services.suggestion_service import build_conversation_text, detect_customer_language
from replyguard.services.translation_service import Translator

logger = get_logger("analysis_service")

ANALYSIS_LANGUAGE = "en"
ANALYSIS_CONTEXT_TOP_K = 3

MODEL_SCORE = 0.8
TEXT_FALLBACK_SCORE = 0.5
KEYWORD_FALLBACK_SCORE = 0.6

ANALYSIS_PROMPT = """Analyze this customer conversation and return JSON with:
- intent: "buying", "support", or "complaint"
- sentiment: "positive", "neutral", or "negative"
- emotions: array of ["frustration", "urgency", "confusion", "trust", "satisfaction"]
- objections: array of ["price", "trust", "delivery", "competitor"] if any

Conversation:
"""

OBJECTION_KEYWORD_MAP = {
    "price": "price",
    "expensive": "price",
    "cost": "price",
    "cheaper": "price",
    "trust": "trust",
    "reliable": "trust",
    "delivery": "delivery",
    "shipping": "delivery",
    "competitor": "competitor",
    "alternative": "competitor",
}


def build_analysis_prompt(conversation_text: str, context: str = "") -> str:
    prompt = ANALYSIS_PROMPT + conversation_text
    if context:
        prompt = f"Context:\n{context}\n\n{prompt}"
    return prompt


def _contains_any(text: str, words: Iterable[str]) -> bool:
    return any(word in text for word in words)


def parse_text_analysis(response_text: str) -> AnalysisResult:
    text = (response_text or "").lower()

    if _contains_any(text, ("buying", "purchase")):
        intent = "buying"
    elif "complaint" in text:
        intent = "complaint"
    else:
        intent = "support"

    if _contains_any(text, ("positive", "happy")):
        sentiment = "positive"
    elif _contains_any(text, ("negative", "angry")):
        sentiment = "negative"
    else:
        sentiment = "neutral"

    return AnalysisResult(
        intent=intent,
        intent_score=TEXT_FALLBACK_SCORE,
        sentiment=sentiment,
        sentiment_score=TEXT_FALLBACK_SCORE,
        emotions=[],
        objections=[],
    )


def _lower_strings(value) -> List[str]:
    if not isinstance(value, list):
        return []
    return [item.lower() for item in value if isinstance(item, str)]


def parse_analysis_response(response_text: str) -> AnalysisResult:
    """Read the outermost JSON object; fall back to keyword reading of the raw text."""
    text = response_text or ""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end < start:
        return parse_text_analysis(text)

    try:
        data = json.loads(text[start : end + 1])
    except ValueError:
        return parse_text_analysis(text)
    if not isinstance(data, dict):
        return parse_text_analysis(text)

    result = AnalysisResult(intent="", intent_score=0.0, sentiment="", sentiment_score=0.0, emotions=[], objections=[])
    if isinstance(data.get("intent"), str):
        result.intent = data["intent"].lower()
        result.intent_score = MODEL_SCORE
    if isinstance(data.get("sentiment"), str):
        result.sentiment = data["sentiment"].lower()
        result.sentiment_score = MODEL_SCORE
    result.emotions = _lower_strings(data.get("emotions"))
    result.objections = _lower_strings(data.get("objections"))
    return result


def keyword_analysis(conversation_text: str) -> AnalysisResult:
    """Analysis without the model, used while it is quota or rate limited."""
    text = (conversation_text or "").lower()

    if _contains_any(text, ("buy", "purchase", "price", "cost")):
        intent = "buying"
    elif _contains_any(text, ("complaint", "problem", "issue")):
        intent = "complaint"
    else:
        intent = "support"

    if _contains_any(text, ("thank", "great", "good", "excellent")):
        sentiment = "positive"
    elif _contains_any(text, ("bad", "terrible", "angry", "frustrated")):
        sentiment = "negative"
    else:
        sentiment = "neutral"

    return AnalysisResult(
        intent=intent,
        intent_score=KEYWORD_FALLBACK_SCORE,
        sentiment=sentiment,
        sentiment_score=KEYWORD_FALLBACK_SCORE,
        emotions=[],
        objections=detect_keyword_objections(text),
    )


def detect_keyword_objections(conversation_text: str) -> List[str]:
    text = (conversation_text or "").lower()
    found: List[str] = []
    for keyword, objection in OBJECTION_KEYWORD_MAP.items():
        if keyword in text and objection not in found:
            found.append(objection)
    return found


def merge_objections(model_objections: Sequence[str], keyword_objections: Sequence[str]) -> List[str]:
    merged: List[str] = []
    for objection in list(model_objections) + list(keyword_objections):
        key = objection.lower()
        if key not in merged:
            merged.append(key)
    return merged


class ConversationAnalyzer:
    """Intent, sentiment, emotion and objection snapshot for a conversation."""

    def __init__(
        self,
        storage: Storage,
        model_client: Optional[ModelClient],
        retriever: Optional[KnowledgeRetriever],
        policy_engine: PolicyEngine,
        translator: Optional[Translator] = None,
    ):
        self.storage = storage
        self.model_client = model_client
        self.retriever = retriever
        self.policy_engine = policy_engine
        self.translator = translator

    def analyze(self, tenant_id: str, conversation_id: str) -> Optional[AnalysisResult]:
        """Analyse and store the snapshot. Returns None when the model failed for a non-quota reason."""
        log = conversation_logger(logger, tenant_id, conversation_id)

        messages = self.storage.get_messages(tenant_id, conversation_id)
        if not messages:
            log.info("No messages to analyse")
            return None

        conversation_text = build_conversation_text(messages)

        if self.model_client is None:
            log.warning("Model client not configured, using keyword analysis")
            analysis = keyword_analysis(conversation_text)
        else:
            context = self._retrieve_context(tenant_id, messages, log)
            try:
                analysis = self._model_analysis(messages, conversation_text, context)
            except (QuotaExhaustedError, RateLimitedError) as e:
                log.warning(f"Analysis blocked by API quota, using keyword analysis: {e}")
                analysis = keyword_analysis(conversation_text)
            except (ModelClientError, httpx.HTTPError) as e:
                log.error(f"Analysis failed: {e}", context={"error": type(e).__name__})
                return None

        analysis.objections = merge_objections(analysis.objections, detect_keyword_objections(conversation_text))

        rules = self.storage.load_active_rules(tenant_id)
        if rules:
            analysis.objections = self.policy_engine.validate_objections(analysis.objections, conversation_text)

        self.storage.save_conversation_metadata(conversation_id, analysis)
        log.info(
            "Analysis complete",
            context={
                "intent": analysis.intent,
                "sentiment": analysis.sentiment,
                "objections": analysis.objections,
            },
        )
        return analysis

    def _retrieve_context(self, tenant_id: str, messages: Sequence[Message], log: ConversationLogger) -> str:
        if self.retriever is None:
            return ""
        query_text = messages[-1].content
        if not (query_text or "").strip():
            return ""
        try:
            vector = self.model_client.generate_embedding(query_text)
            chunks = self.retriever.retrieve_product_knowledge(tenant_id, vector, ANALYSIS_CONTEXT_TOP_K)
        except (ModelClientError, RetrievalError, httpx.HTTPError) as e:
            log.warning(f"Context retrieval failed, continuing without context: {e}")
            return ""
        return format_knowledge_context(chunks)

    def _model_analysis(self, messages: Sequence[Message], conversation_text: str, context: str) -> AnalysisResult:
        language = detect_customer_language(messages)
        text = conversation_text
        if self.translator is not None and language and language != ANALYSIS_LANGUAGE:
            text = self.translator.translate_or_keep(conversation_text, language, ANALYSIS_LANGUAGE)

        response_text = self.model_client.generate_text(build_analysis_prompt(text, context))
        return parse_analysis_response(response_text)
