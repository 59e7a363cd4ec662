from replyguard.models.auto_reply import AutoReplyConversationConfig, AutoReplyGlobalConfig
from replyguard.models.conversation import Conversation, ConversationMetadata, Message
from replyguard.models.customer_memory import BrandTone, CustomerMemory
from replyguard.models.rule import Rule
from replyguard.models.suggestion_cache import SuggestionCache

__all__ = [
    "Rule",
    "Conversation",
    "Message",
    "ConversationMetadata",
    "CustomerMemory",
    "BrandTone",
    "SuggestionCache",
    "AutoReplyGlobalConfig",
    "AutoReplyConversationConfig",
]
