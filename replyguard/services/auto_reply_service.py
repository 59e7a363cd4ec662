from typing import Optional, Sequence

from replyguard.logging_config import ConversationLogger, conversation_logger, get_logger
from replyguard.services.auto_reply_config import EffectiveAutoReplyConfig
from replyguard.services.interfaces import MessageSender, Storage
from replyguard.services.suggestion_service import CUSTOMER_SENDER, Suggestion, SuggestionOrchestrator

logger = get_logger("auto_reply_service")


def select_best_suggestion(suggestions: Sequence[Suggestion], threshold: float) -> Optional[Suggestion]:
    """Highest-confidence suggestion at or above the threshold; ties keep the first seen."""
    best: Optional[Suggestion] = None
    for suggestion in suggestions:
        if suggestion.confidence < threshold:
            continue
        if best is None or suggestion.confidence > best.confidence:
            best = suggestion
    return best


class AutoReplyService:
    """Sends the best qualifying suggestion on behalf of an agent."""

    def __init__(self, storage: Storage, orchestrator: SuggestionOrchestrator, sender: MessageSender):
        self.storage = storage
        self.orchestrator = orchestrator
        self.sender = sender

    def resolve_effective_config(self, tenant_id: str, conversation_id: str) -> EffectiveAutoReplyConfig:
        return self.storage.get_effective_auto_reply_config(tenant_id, conversation_id)

    def should_auto_reply(self, tenant_id: str, conversation_id: str, suggestion: Suggestion) -> bool:
        config = self.resolve_effective_config(tenant_id, conversation_id)
        if not config.enabled:
            return False
        return suggestion.confidence >= config.confidence_threshold

    def process_auto_reply(self, tenant_id: str, conversation_id: str) -> Optional[str]:
        """Returns the id of the sent message, or None when nothing was sent."""
        log = conversation_logger(logger, tenant_id, conversation_id)

        config = self.resolve_effective_config(tenant_id, conversation_id)
        if not config.enabled:
            log.info("Auto-reply disabled", context={"source": config.source})
            return None

        messages = self.storage.get_messages(tenant_id, conversation_id)
        if not messages:
            return None

        # Never react to our own (or a human agent's) output.
        if messages[-1].sender != CUSTOMER_SENDER:
            log.info("Last message not from customer, skipping")
            return None

        result = self.orchestrator.get_reply_suggestions(tenant_id, conversation_id)
        if not result.suggestions:
            log.info("No suggestions available")
            return None

        best = select_best_suggestion(result.suggestions, config.confidence_threshold)
        if best is None:
            log.info(
                "No suggestion meets confidence threshold",
                context={"threshold": config.confidence_threshold, "candidates": len(result.suggestions)},
            )
            return None

        message_id = self.sender.send_agent_message(tenant_id, conversation_id, best.text)
        log.info(
            "Sent auto-reply",
            context={"message_id": message_id, "confidence": best.confidence, "threshold": config.confidence_threshold},
        )
        return message_id
