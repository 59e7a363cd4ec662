from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class ConversationCreateRequest(BaseModel):
    customer_id: Optional[str] = None
    product_id: Optional[str] = None


class ConversationCreateResponse(BaseModel):
    conversation_id: UUID


class MessageRequest(BaseModel):
    content: str
    sender: str
    channel: Optional[str] = None
    language: Optional[str] = None
    timestamp: Optional[datetime] = None


class MessageResponse(BaseModel):
    success: bool
    message_id: UUID
    conversation_id: UUID
