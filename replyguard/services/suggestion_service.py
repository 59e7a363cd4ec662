"""Agent-assist pipeline: cache lookup, context retrieval, generation, validation, cache write."""

import json
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Tuple

import httpx

from replyguard.logging_config import ConversationLogger, conversation_logger, get_logger
from replyguard.models import ConversationMetadata, CustomerMemory, Message
from replyguard.services.confidence_scorer import ConfidenceInputs, ConfidenceScorer, extract_context_scores
from replyguard.services.interfaces import KnowledgeRetriever, Storage
from replyguard.services.knowledge_service import RetrievalError, format_knowledge_context
from replyguard.services.llm import ModelClient, ModelClientError, QuotaExhaustedError, RateLimitedError
from replyguard.services.policy_engine import PolicyEngine
from replyguard.services.translation_service import Translator

logger = get_logger("suggestion_service")

CUSTOMER_SENDER = "customer"
UNKNOWN_LANGUAGE = "unknown"

FALLBACK_CONFIDENCE = 0.7
TRANSLATED_CONFIDENCE = 0.8
FALLBACK_REASONING = "Generated from AI response"
TRANSLATED_REASONING = "Generated with multi-language support"

SUGGESTION_INSTRUCTIONS = """Generate 3 reply suggestions for an agent responding to this customer conversation.
Each suggestion should be:
- Professional and helpful
- Context-aware (use conversation history)
- Product-aware (use product knowledge if relevant)
- Personalized (consider customer preferences if available)
- Include product recommendations based on current intent, similar customer behavior patterns, and objection resolution patterns

For each suggestion, also suggest relevant products if applicable.

Return suggestions as JSON array:
[
  {"text": "suggestion 1", "confidence": 0.85, "reasoning": "why this suggestion", "product_recommendations": ["product1", "product2"]},
  {"text": "suggestion 2", "confidence": 0.80, "reasoning": "why this suggestion", "product_recommendations": []},
  {"text": "suggestion 3", "confidence": 0.75, "reasoning": "why this suggestion", "product_recommendations": ["product3"]}
]

Conversation:
"""


@dataclass
class Suggestion:
    text: str
    confidence: float
    reasoning: str = ""
    product_recommendations: List[str] = field(default_factory=list)

    @property
    def product_match(self) -> bool:
        return bool(self.product_recommendations)

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "confidence": self.confidence,
            "product_match": self.product_match,
            "product_recommendations": list(self.product_recommendations),
            "reasoning": self.reasoning,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Suggestion":
        return cls(
            text=str(data.get("text") or ""),
            confidence=_clamp_confidence(data.get("confidence")),
            reasoning=str(data.get("reasoning") or ""),
            product_recommendations=_string_list(data.get("product_recommendations")),
        )


@dataclass
class SuggestionsResult:
    suggestions: List[Suggestion]
    context_used: bool
    metadata: Optional[ConversationMetadata] = None


def _clamp_confidence(value: Any) -> float:
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return 0.0
    if confidence != confidence:  # NaN
        return 0.0
    return max(0.0, min(1.0, confidence))


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item is not None]


def extract_last_customer_message_id(messages: Sequence[Message]) -> str:
    for message in reversed(messages):
        if message.sender == CUSTOMER_SENDER:
            return str(message.id)
    return ""


def latest_customer_message(messages: Sequence[Message]) -> Optional[Message]:
    for message in reversed(messages):
        if message.sender == CUSTOMER_SENDER:
            return message
    return None


def detect_customer_language(messages: Sequence[Message]) -> str:
    """Language tag of the newest customer message that has one; empty when unknown."""
    for message in reversed(messages):
        if message.sender != CUSTOMER_SENDER:
            continue
        language = (message.language or "").strip().lower()
        if language and language != UNKNOWN_LANGUAGE:
            return language
    return ""


def build_conversation_text(messages: Sequence[Message]) -> str:
    return "\n".join(f"{message.sender}: {message.content}" for message in messages)


def build_suggestion_prompt(
    conversation_text: str,
    context: str = "",
    customer_memory: Optional[CustomerMemory] = None,
    brand_tone: str = "",
    metadata: Optional[ConversationMetadata] = None,
) -> str:
    prompt = SUGGESTION_INSTRUCTIONS + conversation_text

    if context:
        prompt = f"Product Knowledge Context:\n{context}\n\n{prompt}"

    if customer_memory is not None:
        memory_info = (
            "Customer Preferences:\n"
            f"- Language: {customer_memory.preferred_language or ''}\n"
            f"- Pricing Sensitivity: {customer_memory.pricing_sensitivity or ''}\n"
            f"- Product Interests: {', '.join(customer_memory.product_interests or [])}\n"
            f"- Past Objections: {', '.join(customer_memory.past_objections or [])}\n"
        )
        prompt = f"{memory_info}\n{prompt}"

    if brand_tone:
        prompt = f"Brand Tone: {brand_tone}\n\n{prompt}"

    if metadata is not None:
        insights = (
            "Conversation Insights:\n"
            f"- Intent: {metadata.intent or ''} (score: {float(metadata.intent_score or 0.0):.2f})\n"
            f"- Sentiment: {metadata.sentiment or ''} (score: {float(metadata.sentiment_score or 0.0):.2f})\n"
            f"- Objections: {', '.join(metadata.objections or [])}\n"
        )
        prompt = f"{insights}\n{prompt}"

    return prompt


def parse_suggestions_response(
    response_text: str,
    fallback_confidence: float = FALLBACK_CONFIDENCE,
    fallback_reasoning: str = FALLBACK_REASONING,
) -> List[Suggestion]:
    """Parse the outermost JSON array; otherwise the whole reply is one suggestion."""
    text = (response_text or "").strip()
    if not text:
        return []

    fallback = [Suggestion(text=text, confidence=fallback_confidence, reasoning=fallback_reasoning)]

    start = text.find("[")
    end = text.rfind("]")
    if start == -1 or end == -1 or end < start:
        return fallback

    try:
        items = json.loads(text[start : end + 1])
    except ValueError as e:
        logger.warning(f"Failed to parse JSON suggestions: {e}")
        return fallback

    if not isinstance(items, list):
        return fallback

    suggestions = []
    for item in items:
        if not isinstance(item, dict):
            continue
        suggestion = Suggestion.from_dict(item)
        if suggestion.text:
            suggestions.append(suggestion)
    return suggestions


def serialize_suggestions(suggestions: Sequence[Suggestion]) -> str:
    return json.dumps([s.to_dict() for s in suggestions], ensure_ascii=False)


def deserialize_suggestions(data: str) -> List[Suggestion]:
    items = json.loads(data)
    if not isinstance(items, list):
        raise ValueError("cached suggestions are not a list")
    return [Suggestion.from_dict(item) for item in items if isinstance(item, dict)]


class SuggestionOrchestrator:
    """Produce validated, scored and cached reply suggestions for one conversation.

    Model and retrieval failures degrade to empty context or an empty
    suggestion list. Storage failures propagate to the caller.
    """

    def __init__(
        self,
        storage: Storage,
        model_client: Optional[ModelClient],
        retriever: Optional[KnowledgeRetriever],
        policy_engine: PolicyEngine,
        confidence_scorer: ConfidenceScorer,
        translator: Optional[Translator] = None,
        agent_language: str = "en",
        top_k: int = 5,
    ):
        self.storage = storage
        self.model_client = model_client
        self.retriever = retriever
        self.policy_engine = policy_engine
        self.confidence_scorer = confidence_scorer
        self.translator = translator
        self.agent_language = (agent_language or "").lower()
        self.top_k = top_k

    def get_reply_suggestions(self, tenant_id: str, conversation_id: str) -> SuggestionsResult:
        log = conversation_logger(logger, tenant_id, conversation_id)

        messages = self.storage.get_messages(tenant_id, conversation_id)
        if not messages:
            return SuggestionsResult(suggestions=[], context_used=False, metadata=None)

        last_message_id = extract_last_customer_message_id(messages)

        if last_message_id:
            cached = self._read_cache(conversation_id, last_message_id, log)
            if cached is not None:
                return cached

        metadata = self.storage.get_conversation_metadata(conversation_id)
        context, context_scores = self._retrieve_context(tenant_id, messages, log)

        customer_id = self.storage.get_customer_id(tenant_id, conversation_id) or str(conversation_id)
        customer_memory = self.storage.get_customer_memory(tenant_id, customer_id)
        brand_tone = self.storage.get_brand_tone(tenant_id)
        customer_lang = detect_customer_language(messages)

        candidates = self._generate_candidates(
            messages, context, customer_memory, brand_tone, metadata, customer_lang, log
        )
        if candidates is None:
            return SuggestionsResult(suggestions=[], context_used=bool(context), metadata=metadata)

        rules = self.storage.load_active_rules(tenant_id)
        validated = self._validate_and_score(candidates, rules, metadata, context_scores, log)

        log.info(f"Generated {len(validated)} suggestions", context={"candidates": len(candidates)})

        if last_message_id:
            self.storage.save_suggestion_cache(
                str(conversation_id), last_message_id, serialize_suggestions(validated), bool(context)
            )
            log.info("Saved suggestions to cache", context={"last_message_id": last_message_id})

        return SuggestionsResult(suggestions=validated, context_used=bool(context), metadata=metadata)

    def _read_cache(
        self, conversation_id: str, last_message_id: str, log: ConversationLogger
    ) -> Optional[SuggestionsResult]:
        entry = self.storage.get_suggestion_cache(str(conversation_id), last_message_id)
        if entry is None:
            log.info("Suggestion cache miss", context={"last_message_id": last_message_id})
            return None

        try:
            suggestions = deserialize_suggestions(entry.suggestions_data)
        except (ValueError, TypeError) as e:
            log.warning(f"Failed to parse cached suggestions, regenerating: {e}")
            return None

        log.info("Suggestion cache hit", context={"last_message_id": last_message_id})
        # Metadata changes independently of the cache key, so it is always read fresh.
        metadata = self.storage.get_conversation_metadata(conversation_id)
        return SuggestionsResult(suggestions=suggestions, context_used=bool(entry.context_used), metadata=metadata)

    def _retrieve_context(
        self, tenant_id: str, messages: Sequence[Message], log: ConversationLogger
    ) -> Tuple[str, List[float]]:
        if self.model_client is None or self.retriever is None:
            return "", []

        query_message = latest_customer_message(messages) or messages[-1]
        if not (query_message.content or "").strip():
            return "", []

        try:
            vector = self.model_client.generate_embedding(query_message.content)
            chunks = self.retriever.retrieve_product_knowledge(tenant_id, vector, self.top_k)
        except (QuotaExhaustedError, RateLimitedError) as e:
            log.warning(f"Context retrieval blocked by API quota, continuing without context: {e}")
            return "", []
        except (ModelClientError, RetrievalError, httpx.HTTPError) as e:
            log.warning(f"Context retrieval failed, continuing without context: {e}")
            return "", []

        return format_knowledge_context(chunks), extract_context_scores(chunks)

    def _generate_candidates(
        self,
        messages: Sequence[Message],
        context: str,
        customer_memory: Optional[CustomerMemory],
        brand_tone: str,
        metadata: Optional[ConversationMetadata],
        customer_lang: str,
        log: ConversationLogger,
    ) -> Optional[List[Suggestion]]:
        """Candidate suggestions, or None when the model could not produce any."""
        if self.model_client is None:
            log.warning("Model client not configured, returning empty suggestions")
            return None

        if customer_lang and customer_lang != self.agent_language and self.translator is not None:
            try:
                return self._generate_with_translation(
                    messages, context, customer_memory, brand_tone, metadata, customer_lang
                )
            except Exception as e:
                log.warning(
                    f"Translated generation failed, falling back to direct generation: {e}",
                    context={"customer_language": customer_lang, "agent_language": self.agent_language},
                )

        prompt = build_suggestion_prompt(
            build_conversation_text(messages), context, customer_memory, brand_tone, metadata
        )
        try:
            response_text = self.model_client.generate_text(prompt)
        except QuotaExhaustedError as e:
            log.warning(f"Model quota exhausted, returning empty suggestions: {e}")
            return None
        except RateLimitedError as e:
            log.warning(f"Model rate limit exceeded, returning empty suggestions: {e}")
            return None
        except ModelClientError as e:
            log.warning(
                f"Model call failed, returning empty suggestions: {e}",
                context={"error": type(e).__name__, "status_code": e.status_code},
            )
            return None
        except Exception as e:
            log.error(f"Suggestion generation error: {e}", exc_info=True)
            return None

        return parse_suggestions_response(response_text)

    def _generate_with_translation(
        self,
        messages: Sequence[Message],
        context: str,
        customer_memory: Optional[CustomerMemory],
        brand_tone: str,
        metadata: Optional[ConversationMetadata],
        customer_lang: str,
    ) -> List[Suggestion]:
        transcript = self.translator.translate_or_keep(
            build_conversation_text(messages), customer_lang, self.agent_language
        )
        prompt = build_suggestion_prompt(transcript, context, customer_memory, brand_tone, metadata)
        response_text = self.model_client.generate_text(prompt)

        suggestions = parse_suggestions_response(
            response_text,
            fallback_confidence=TRANSLATED_CONFIDENCE,
            fallback_reasoning=TRANSLATED_REASONING,
        )
        for suggestion in suggestions:
            suggestion.text = self.translator.translate_or_keep(suggestion.text, self.agent_language, customer_lang)
        return suggestions

    def _validate_and_score(
        self,
        candidates: Sequence[Suggestion],
        rules: Sequence[Any],
        metadata: Optional[ConversationMetadata],
        context_scores: List[float],
        log: ConversationLogger,
    ) -> List[Suggestion]:
        validated = []
        for candidate in candidates:
            result = self.policy_engine.validate_output(candidate.text, rules)
            if result.blocked:
                log.info(f"Suggestion blocked by policy: {result.explanation}")
                continue

            text = candidate.text
            if result.corrected_text != text:
                log.info(
                    "Suggestion auto-corrected by policy",
                    context={"violations": len(result.violations)},
                )
                text = result.corrected_text

            confidence = self.confidence_scorer.calculate_confidence(
                ConfidenceInputs(
                    analysis=metadata,
                    context_scores=context_scores,
                    rule_results=result.rule_results,
                    self_evaluation=candidate.confidence,
                )
            )
            validated.append(
                Suggestion(
                    text=text,
                    confidence=confidence,
                    reasoning=candidate.reasoning,
                    product_recommendations=list(candidate.product_recommendations),
                )
            )
        return validated
