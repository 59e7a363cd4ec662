import uuid

from sqlalchemy import Column, Float, ForeignKey, Text
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID
from sqlalchemy.orm import relationship

from replyguard.database import Base


class Conversation(Base):
    __tablename__ = "conversations"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Text, nullable=False, index=True)
    customer_id = Column(Text)  # null for agent-initiated conversations
    product_id = Column(Text)
    status = Column(Text, nullable=False, default="active")  # active, closed, archived
    created_at = Column(TIMESTAMP(timezone=True), nullable=False)
    updated_at = Column(TIMESTAMP(timezone=True))

    messages = relationship("Message", back_populates="conversation", order_by="Message.timestamp")
    analysis = relationship("ConversationMetadata", back_populates="conversation", uselist=False)


class Message(Base):
    __tablename__ = "messages"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    conversation_id = Column(UUID(as_uuid=True), ForeignKey("conversations.id"), nullable=False)
    sender = Column(Text, nullable=False)  # customer, agent
    content = Column(Text, nullable=False)
    channel = Column(Text, nullable=False, default="web")
    language = Column(Text, nullable=False, default="unknown")
    timestamp = Column(TIMESTAMP(timezone=True), nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False)

    conversation = relationship("Conversation", back_populates="messages")


class ConversationMetadata(Base):
    """AI analysis snapshot, stored apart from the immutable messages."""

    __tablename__ = "conversation_metadata"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    conversation_id = Column(UUID(as_uuid=True), ForeignKey("conversations.id"), nullable=False, unique=True)
    intent = Column(Text)  # buying, support, complaint
    intent_score = Column(Float, default=0.0)
    sentiment = Column(Text)  # positive, neutral, negative
    sentiment_score = Column(Float, default=0.0)
    emotions = Column(JSONB, nullable=False, default=list)
    objections = Column(JSONB, nullable=False, default=list)  # price, trust, delivery, competitor
    updated_at = Column(TIMESTAMP(timezone=True))

    conversation = relationship("Conversation", back_populates="analysis")
