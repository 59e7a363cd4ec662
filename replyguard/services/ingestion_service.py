from datetime import datetime, timezone
from typing import Optional

from replyguard.logging_config import get_logger
from replyguard.services.interfaces import ConversationTriggers, MessageSender, NormalizedMessage, Storage

logger = get_logger("ingestion_service")

VALID_SENDERS = ("customer", "agent")
DEFAULT_CHANNEL = "web"
UNKNOWN_LANGUAGE = "unknown"

CHANNEL_ALIASES = {
    "web": "web",
    "webchat": "web",
    "chat": "web",
    "website": "web",
    "whatsapp": "whatsapp",
    "wa": "whatsapp",
    "email": "email",
    "e-mail": "email",
}


def normalize_channel(channel: Optional[str]) -> str:
    value = (channel or "").strip().lower()
    if not value:
        return DEFAULT_CHANNEL
    return CHANNEL_ALIASES.get(value, value)


def normalize_language(language: Optional[str]) -> str:
    value = (language or "").strip().lower()
    return value or UNKNOWN_LANGUAGE


def normalize_message(
    content: str,
    sender: str,
    channel: Optional[str],
    conversation_id: str,
    timestamp: Optional[datetime] = None,
    language: Optional[str] = None,
) -> NormalizedMessage:
    """Validate and normalise an incoming message. Raises ValueError on a bad sender or empty content."""
    normalized_sender = (sender or "").strip().lower()
    if normalized_sender not in VALID_SENDERS:
        raise ValueError("invalid sender: must be 'customer' or 'agent'")

    text = (content or "").strip()
    if not text:
        raise ValueError("message content is empty")

    return NormalizedMessage(
        conversation_id=str(conversation_id),
        sender=normalized_sender,
        content=text,
        timestamp=timestamp or datetime.now(timezone.utc),
        channel=normalize_channel(channel),
        language=normalize_language(language),
    )


class IngestionService(MessageSender):
    """Stores messages and schedules the background work each one triggers."""

    def __init__(self, storage: Storage, triggers: Optional[ConversationTriggers] = None):
        self.storage = storage
        self.triggers = triggers

    def create_conversation(
        self, tenant_id: str, customer_id: Optional[str] = None, product_id: Optional[str] = None
    ) -> str:
        return self.storage.create_conversation(tenant_id, customer_id, product_id)

    def ingest_message(self, tenant_id: str, message: NormalizedMessage) -> str:
        message_id = self.storage.create_message(tenant_id, message)
        logger.info(
            "Message stored",
            extra={
                "context": {
                    "tenant_id": tenant_id,
                    "conversation_id": message.conversation_id,
                    "message_id": message_id,
                    "sender": message.sender,
                    "channel": message.channel,
                }
            },
        )

        if self.triggers is not None:
            self.triggers.analyze_async(tenant_id, message.conversation_id)
            if message.sender == "customer":
                self.triggers.auto_reply_async(tenant_id, message.conversation_id)

        return message_id

    def send_agent_message(self, tenant_id: str, conversation_id: str, text: str) -> str:
        normalized = normalize_message(text, "agent", DEFAULT_CHANNEL, conversation_id)
        return self.ingest_message(tenant_id, normalized)
