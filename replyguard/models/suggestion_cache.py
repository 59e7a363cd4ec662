import uuid

from sqlalchemy import Boolean, Column, Index, Text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID

from replyguard.database import Base


class SuggestionCache(Base):
    """Validated suggestions keyed by (conversation, last customer message)."""

    __tablename__ = "suggestions"
    __table_args__ = (Index("ix_suggestions_cache_key", "conversation_id", "last_customer_message_id"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    conversation_id = Column(Text, nullable=False)
    last_customer_message_id = Column(Text, nullable=False)
    suggestions_data = Column(Text, nullable=False)  # JSON array
    context_used = Column(Boolean, nullable=False, default=False)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False)
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False)
