"""Capabilities the suggestion pipeline is assembled from.

Each collaborator is passed in at construction; the pipeline never looks
anything up on its own.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from replyguard.models import ConversationMetadata, CustomerMemory, Message, Rule, SuggestionCache
from replyguard.services.auto_reply_config import EffectiveAutoReplyConfig


@dataclass
class NormalizedMessage:
    conversation_id: str
    sender: str
    content: str
    timestamp: datetime
    channel: str
    language: str


@dataclass
class AnalysisResult:
    intent: str
    intent_score: float
    sentiment: str
    sentiment_score: float
    emotions: List[str]
    objections: List[str]


class Storage(ABC):
    """Tenant-scoped persistence. Failures here are hard errors for the caller."""

    @abstractmethod
    def load_active_rules(self, tenant_id: str) -> List[Rule]: ...

    @abstractmethod
    def get_messages(self, tenant_id: str, conversation_id: str) -> List[Message]:
        """Messages ordered by timestamp ascending."""

    @abstractmethod
    def create_conversation(
        self, tenant_id: str, customer_id: Optional[str] = None, product_id: Optional[str] = None
    ) -> str:
        """Reuses the customer's active conversation when there is one."""

    @abstractmethod
    def create_message(self, tenant_id: str, message: NormalizedMessage) -> str: ...

    @abstractmethod
    def get_conversation_metadata(self, conversation_id: str) -> Optional[ConversationMetadata]: ...

    @abstractmethod
    def save_conversation_metadata(self, conversation_id: str, analysis: AnalysisResult) -> None: ...

    @abstractmethod
    def get_customer_id(self, tenant_id: str, conversation_id: str) -> Optional[str]: ...

    @abstractmethod
    def get_customer_memory(self, tenant_id: str, customer_id: str) -> Optional[CustomerMemory]: ...

    @abstractmethod
    def get_brand_tone(self, tenant_id: str) -> str: ...

    @abstractmethod
    def get_suggestion_cache(self, conversation_id: str, last_message_id: str) -> Optional[SuggestionCache]: ...

    @abstractmethod
    def save_suggestion_cache(
        self, conversation_id: str, last_message_id: str, suggestions_data: str, context_used: bool
    ) -> None: ...

    @abstractmethod
    def get_effective_auto_reply_config(self, tenant_id: str, conversation_id: str) -> EffectiveAutoReplyConfig:
        """Conversation override over tenant default. Raises ConversationNotFoundError outside the tenant."""


class KnowledgeRetriever(ABC):
    @abstractmethod
    def query(self, collection: str, vector: List[float], top_k: int) -> List[dict]:
        """Nearest chunks as dicts with text, score and metadata."""

    @abstractmethod
    def retrieve_product_knowledge(self, tenant_id: str, vector: List[float], top_k: int) -> List[dict]: ...

    @abstractmethod
    def health_check(self) -> None:
        """Raise RetrievalError if the vector store is unreachable."""


class MessageSender(ABC):
    """Write path shared by human agents and the auto-reply service."""

    @abstractmethod
    def send_agent_message(self, tenant_id: str, conversation_id: str, text: str) -> str: ...


class ConversationTriggers(ABC):
    """Background work scheduled after a message is stored."""

    @abstractmethod
    def analyze_async(self, tenant_id: str, conversation_id: str) -> bool: ...

    @abstractmethod
    def auto_reply_async(self, tenant_id: str, conversation_id: str) -> bool: ...
