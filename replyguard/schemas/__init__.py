from replyguard.schemas.auto_reply import AutoReplyConfigResponse
from replyguard.schemas.message import (
    ConversationCreateRequest,
    ConversationCreateResponse,
    MessageRequest,
    MessageResponse,
)
from replyguard.schemas.suggestion import ConversationMetadataSchema, SuggestionSchema, SuggestionsResponse

__all__ = [
    "AutoReplyConfigResponse",
    "ConversationCreateRequest",
    "ConversationCreateResponse",
    "MessageRequest",
    "MessageResponse",
    "ConversationMetadataSchema",
    "SuggestionSchema",
    "SuggestionsResponse",
]
