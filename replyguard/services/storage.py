import uuid
from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from replyguard.logging_config import get_logger
from replyguard.models import (
    AutoReplyConversationConfig,
    AutoReplyGlobalConfig,
    BrandTone,
    Conversation,
    ConversationMetadata,
    CustomerMemory,
    Message,
    Rule,
    SuggestionCache,
)
from replyguard.services.auto_reply_config import EffectiveAutoReplyConfig, resolve_effective_config
from replyguard.services.interfaces import AnalysisResult, NormalizedMessage, Storage

logger = get_logger("storage")

DEFAULT_BRAND_TONE = "Professional"


class ConversationNotFoundError(LookupError):
    def __init__(self, tenant_id: str, conversation_id: str):
        self.tenant_id = tenant_id
        self.conversation_id = conversation_id
        super().__init__(f"Conversation {conversation_id} not found for tenant {tenant_id}")


def _parse_uuid(value) -> Optional[UUID]:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None


def load_active_rules(db: Session, tenant_id: str) -> List[Rule]:
    return (
        db.query(Rule)
        .filter(Rule.tenant_id == tenant_id, Rule.is_active.is_(True))
        .order_by(Rule.created_at)
        .all()
    )


def get_conversation(db: Session, tenant_id: str, conversation_id) -> Optional[Conversation]:
    conversation_uuid = _parse_uuid(conversation_id)
    if conversation_uuid is None:
        return None
    return (
        db.query(Conversation)
        .filter(Conversation.id == conversation_uuid, Conversation.tenant_id == tenant_id)
        .first()
    )


def find_active_conversation(db: Session, tenant_id: str, customer_id: str) -> Optional[Conversation]:
    return (
        db.query(Conversation)
        .filter(
            Conversation.tenant_id == tenant_id,
            Conversation.customer_id == customer_id,
            Conversation.status == "active",
        )
        .order_by(Conversation.updated_at.desc())
        .first()
    )


def create_conversation(
    db: Session, tenant_id: str, customer_id: Optional[str] = None, product_id: Optional[str] = None
) -> Conversation:
    if customer_id:
        existing = find_active_conversation(db, tenant_id, customer_id)
        if existing is not None:
            return existing

    now = datetime.now(timezone.utc)
    conversation = Conversation(
        id=uuid.uuid4(),
        tenant_id=tenant_id,
        customer_id=customer_id,
        product_id=product_id,
        status="active",
        created_at=now,
        updated_at=now,
    )
    db.add(conversation)
    db.flush()
    return conversation


def get_messages(db: Session, tenant_id: str, conversation_id) -> List[Message]:
    conversation_uuid = _parse_uuid(conversation_id)
    if conversation_uuid is None:
        return []
    return (
        db.query(Message)
        .join(Conversation, Conversation.id == Message.conversation_id)
        .filter(Message.conversation_id == conversation_uuid, Conversation.tenant_id == tenant_id)
        .order_by(Message.timestamp.asc(), Message.created_at.asc())
        .all()
    )


def save_message(db: Session, tenant_id: str, normalized: NormalizedMessage) -> Message:
    conversation = get_conversation(db, tenant_id, normalized.conversation_id)
    if conversation is None:
        raise ConversationNotFoundError(tenant_id, normalized.conversation_id)

    now = datetime.now(timezone.utc)
    message = Message(
        id=uuid.uuid4(),
        conversation_id=conversation.id,
        sender=normalized.sender,
        content=normalized.content,
        channel=normalized.channel,
        language=normalized.language,
        timestamp=normalized.timestamp,
        created_at=now,
    )
    db.add(message)
    conversation.updated_at = now
    db.flush()
    return message


def get_conversation_metadata(db: Session, conversation_id) -> Optional[ConversationMetadata]:
    conversation_uuid = _parse_uuid(conversation_id)
    if conversation_uuid is None:
        return None
    return db.query(ConversationMetadata).filter(ConversationMetadata.conversation_id == conversation_uuid).first()


def upsert_conversation_metadata(db: Session, conversation_id, analysis: AnalysisResult) -> ConversationMetadata:
    metadata = get_conversation_metadata(db, conversation_id)
    if metadata is None:
        metadata = ConversationMetadata(id=uuid.uuid4(), conversation_id=_parse_uuid(conversation_id))
        db.add(metadata)

    metadata.intent = analysis.intent
    metadata.intent_score = analysis.intent_score
    metadata.sentiment = analysis.sentiment
    metadata.sentiment_score = analysis.sentiment_score
    metadata.emotions = list(analysis.emotions)
    metadata.objections = list(analysis.objections)
    metadata.updated_at = datetime.now(timezone.utc)
    db.flush()
    return metadata


def get_customer_memory(db: Session, tenant_id: str, customer_id: str) -> Optional[CustomerMemory]:
    return (
        db.query(CustomerMemory)
        .filter(CustomerMemory.tenant_id == tenant_id, CustomerMemory.customer_id == customer_id)
        .first()
    )


def get_brand_tone(db: Session, tenant_id: str, default: str = DEFAULT_BRAND_TONE) -> str:
    row = db.query(BrandTone).filter(BrandTone.tenant_id == tenant_id).first()
    if not row or not row.tone:
        return default
    return row.tone


def get_suggestion_cache(db: Session, conversation_id: str, last_message_id: str) -> Optional[SuggestionCache]:
    return (
        db.query(SuggestionCache)
        .filter(
            SuggestionCache.conversation_id == str(conversation_id),
            SuggestionCache.last_customer_message_id == str(last_message_id),
        )
        .order_by(SuggestionCache.created_at.desc())
        .first()
    )


def save_suggestion_cache(
    db: Session,
    conversation_id: str,
    last_message_id: str,
    suggestions_data: str,
    context_used: bool,
) -> SuggestionCache:
    """Delete-then-insert so at most one row exists per cache key."""
    db.query(SuggestionCache).filter(
        SuggestionCache.conversation_id == str(conversation_id),
        SuggestionCache.last_customer_message_id == str(last_message_id),
    ).delete(synchronize_session=False)

    now = datetime.now(timezone.utc)
    entry = SuggestionCache(
        id=uuid.uuid4(),
        conversation_id=str(conversation_id),
        last_customer_message_id=str(last_message_id),
        suggestions_data=suggestions_data,
        context_used=context_used,
        created_at=now,
        updated_at=now,
    )
    db.add(entry)
    db.flush()
    return entry


def get_global_auto_reply_config(db: Session, tenant_id: str) -> Optional[AutoReplyGlobalConfig]:
    return db.query(AutoReplyGlobalConfig).filter(AutoReplyGlobalConfig.tenant_id == tenant_id).first()


def get_conversation_auto_reply_config(db: Session, conversation_id: str) -> Optional[AutoReplyConversationConfig]:
    return (
        db.query(AutoReplyConversationConfig)
        .filter(AutoReplyConversationConfig.conversation_id == str(conversation_id))
        .first()
    )


class SqlStorage(Storage):
    """Storage bound to one SQLAlchemy session. Writes commit immediately."""

    def __init__(self, db: Session, default_brand_tone: str = DEFAULT_BRAND_TONE):
        self.db = db
        self.default_brand_tone = default_brand_tone

    def load_active_rules(self, tenant_id: str) -> List[Rule]:
        return load_active_rules(self.db, tenant_id)

    def get_messages(self, tenant_id: str, conversation_id: str) -> List[Message]:
        return get_messages(self.db, tenant_id, conversation_id)

    def create_conversation(
        self, tenant_id: str, customer_id: Optional[str] = None, product_id: Optional[str] = None
    ) -> str:
        try:
            conversation = create_conversation(self.db, tenant_id, customer_id, product_id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return str(conversation.id)

    def create_message(self, tenant_id: str, message: NormalizedMessage) -> str:
        try:
            saved = save_message(self.db, tenant_id, message)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return str(saved.id)

    def get_conversation_metadata(self, conversation_id: str) -> Optional[ConversationMetadata]:
        return get_conversation_metadata(self.db, conversation_id)

    def save_conversation_metadata(self, conversation_id: str, analysis: AnalysisResult) -> None:
        try:
            upsert_conversation_metadata(self.db, conversation_id, analysis)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def get_customer_id(self, tenant_id: str, conversation_id: str) -> Optional[str]:
        conversation = get_conversation(self.db, tenant_id, conversation_id)
        if conversation is None:
            return None
        return conversation.customer_id

    def get_customer_memory(self, tenant_id: str, customer_id: str) -> Optional[CustomerMemory]:
        return get_customer_memory(self.db, tenant_id, customer_id)

    def get_brand_tone(self, tenant_id: str) -> str:
        return get_brand_tone(self.db, tenant_id, default=self.default_brand_tone)

    def get_suggestion_cache(self, conversation_id: str, last_message_id: str) -> Optional[SuggestionCache]:
        return get_suggestion_cache(self.db, conversation_id, last_message_id)

    def save_suggestion_cache(
        self, conversation_id: str, last_message_id: str, suggestions_data: str, context_used: bool
    ) -> None:
        try:
            save_suggestion_cache(self.db, conversation_id, last_message_id, suggestions_data, context_used)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def get_effective_auto_reply_config(self, tenant_id: str, conversation_id: str) -> EffectiveAutoReplyConfig:
        """Raises ConversationNotFoundError when the conversation belongs to another tenant."""
        conversation = get_conversation(self.db, tenant_id, conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(tenant_id, conversation_id)
        conversation_config = get_conversation_auto_reply_config(self.db, str(conversation.id))
        global_config = get_global_auto_reply_config(self.db, tenant_id)
        return resolve_effective_config(conversation_config, global_config)
