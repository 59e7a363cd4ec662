from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import List, Optional
from unittest.mock import Mock
from uuid import uuid4

import pytest

from replyguard.services.auto_reply_config import EffectiveAutoReplyConfig
from replyguard.services.interfaces import KnowledgeRetriever, Storage
from replyguard.services.llm import ModelClient

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def make_message(sender: str, content: str, language: str = "unknown", offset: int = 0):
    return SimpleNamespace(
        id=uuid4(),
        sender=sender,
        content=content,
        language=language,
        channel="web",
        timestamp=BASE_TIME + timedelta(minutes=offset),
    )


def make_rule(pattern: str, action: str, name: Optional[str] = None, template: Optional[str] = None, **kwargs):
    return SimpleNamespace(
        id=kwargs.get("id", uuid4()),
        name=name or f"{action}:{pattern}",
        type=kwargs.get("type"),
        pattern=pattern,
        action=action,
        correction_template=template,
        is_active=kwargs.get("is_active", True),
    )


class InMemoryStorage(Storage):
    """Dict-backed storage for one tenant/conversation set."""

    def __init__(self):
        self.messages = {}
        self.rules: List = []
        self.metadata = {}
        self.memories = {}
        self.brand_tone = "Professional"
        self.cache = {}
        self.customer_ids = {}
        self.auto_reply_config = EffectiveAutoReplyConfig(enabled=False, confidence_threshold=0.8, source="global")
        self.cache_saves = 0
        self.saved_metadata = []

    def add_message(self, conversation_id, message):
        self.messages.setdefault(str(conversation_id), []).append(message)
        return message

    def load_active_rules(self, tenant_id):
        return [rule for rule in self.rules if rule.is_active]

    def get_messages(self, tenant_id, conversation_id):
        return sorted(self.messages.get(str(conversation_id), []), key=lambda m: m.timestamp)

    def create_conversation(self, tenant_id, customer_id=None, product_id=None):
        conversation_id = str(uuid4())
        self.messages[conversation_id] = []
        self.customer_ids[conversation_id] = customer_id
        return conversation_id

    def create_message(self, tenant_id, message):
        existing = self.messages.get(str(message.conversation_id), [])
        stored = SimpleNamespace(
            id=uuid4(),
            sender=message.sender,
            content=message.content,
            language=message.language,
            channel=message.channel,
            timestamp=BASE_TIME + timedelta(minutes=len(existing) + 100),
        )
        self.add_message(message.conversation_id, stored)
        return str(stored.id)

    def get_conversation_metadata(self, conversation_id):
        return self.metadata.get(str(conversation_id))

    def save_conversation_metadata(self, conversation_id, analysis):
        self.saved_metadata.append(analysis)
        self.metadata[str(conversation_id)] = SimpleNamespace(**vars(analysis))

    def get_customer_id(self, tenant_id, conversation_id):
        return self.customer_ids.get(str(conversation_id))

    def get_customer_memory(self, tenant_id, customer_id):
        return self.memories.get(customer_id)

    def get_brand_tone(self, tenant_id):
        return self.brand_tone

    def get_suggestion_cache(self, conversation_id, last_message_id):
        return self.cache.get((str(conversation_id), str(last_message_id)))

    def save_suggestion_cache(self, conversation_id, last_message_id, suggestions_data, context_used):
        self.cache_saves += 1
        self.cache[(str(conversation_id), str(last_message_id))] = SimpleNamespace(
            suggestions_data=suggestions_data, context_used=context_used
        )

    def get_effective_auto_reply_config(self, tenant_id, conversation_id):
        return self.auto_reply_config


class FakeModelClient(ModelClient):
    """Returns queued responses (or raises queued exceptions) and records prompts."""

    def __init__(self, responses=None, embedding=None, embedding_error=None):
        self.responses = list(responses or [])
        self.embedding = embedding if embedding is not None else [0.1, 0.2, 0.3]
        self.embedding_error = embedding_error
        self.prompts: List[str] = []
        self.embedded: List[str] = []

    def generate_text(self, prompt, context=""):
        self.prompts.append(prompt)
        if not self.responses:
            raise AssertionError("unexpected generate_text call")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def generate_embedding(self, text):
        self.embedded.append(text)
        if self.embedding_error is not None:
            raise self.embedding_error
        return self.embedding

    def health_check(self):
        return None


class FakeRetriever(KnowledgeRetriever):
    def __init__(self, chunks=None, error=None):
        self.chunks = chunks or []
        self.error = error
        self.calls = []

    def query(self, collection, vector, top_k):
        return self.chunks[:top_k]

    def retrieve_product_knowledge(self, tenant_id, vector, top_k):
        self.calls.append((tenant_id, top_k))
        if self.error is not None:
            raise self.error
        return self.chunks[:top_k]

    def health_check(self):
        if self.error is not None:
            raise self.error


@pytest.fixture
def db_session():
    """Mock database session."""
    return Mock()


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def retriever():
    return FakeRetriever(
        chunks=[
            {"id": "p1", "text": "Pro plan costs $49 per month.", "score": 0.9, "metadata": {}},
            {"id": "p2", "text": "Ships in 3-5 business days.", "score": 0.7, "metadata": {}},
        ]
    )


@pytest.fixture
def conversation_id():
    return str(uuid4())
