import uuid

from sqlalchemy import Column, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID

from replyguard.database import Base


class CustomerMemory(Base):
    __tablename__ = "customer_memory"
    __table_args__ = (UniqueConstraint("tenant_id", "customer_id"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Text, nullable=False)
    customer_id = Column(Text, nullable=False)
    preferred_language = Column(Text)
    pricing_sensitivity = Column(Text)  # high, medium, low
    product_interests = Column(JSONB, nullable=False, default=list)
    past_objections = Column(JSONB, nullable=False, default=list)
    created_at = Column(TIMESTAMP(timezone=True))
    updated_at = Column(TIMESTAMP(timezone=True))


class BrandTone(Base):
    __tablename__ = "brand_tone"

    tenant_id = Column(Text, primary_key=True)
    tone = Column(Text, nullable=False)
    updated_at = Column(TIMESTAMP(timezone=True))
