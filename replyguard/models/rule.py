import uuid

from sqlalchemy import Boolean, Column, Text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID

from replyguard.database import Base


class Rule(Base):
    __tablename__ = "rules"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Text, nullable=False, index=True)
    name = Column(Text, nullable=False)
    description = Column(Text)
    type = Column(Text)  # no_false_claims, no_unauthorized_discounts, ...
    pattern = Column(Text, nullable=False)  # regex or keyword
    action = Column(Text, nullable=False)  # block, auto_correct, flag
    correction_template = Column(Text)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(TIMESTAMP(timezone=True))
    updated_at = Column(TIMESTAMP(timezone=True))
