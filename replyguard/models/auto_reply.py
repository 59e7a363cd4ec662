from sqlalchemy import Boolean, Column, Float, Text
from sqlalchemy.dialects.postgresql import TIMESTAMP

from replyguard.database import Base


class AutoReplyGlobalConfig(Base):
    __tablename__ = "auto_reply_global"

    tenant_id = Column(Text, primary_key=True)
    enabled = Column(Boolean, nullable=False, default=False)
    confidence_threshold = Column(Float, nullable=False, default=0.8)
    updated_at = Column(TIMESTAMP(timezone=True))


class AutoReplyConversationConfig(Base):
    __tablename__ = "auto_reply_conversations"

    conversation_id = Column(Text, primary_key=True)
    enabled = Column(Boolean, nullable=False, default=False)
    confidence_threshold = Column(Float)  # null means borrow the tenant's global threshold
    updated_at = Column(TIMESTAMP(timezone=True))
