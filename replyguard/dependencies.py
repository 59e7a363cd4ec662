"""Application assembly: clients are built once from settings and injected everywhere."""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends
from sqlalchemy.orm import Session

from replyguard.background import BackgroundDispatcher
from replyguard.config import Settings, settings
from replyguard.database import SessionLocal, get_db
from replyguard.logging_config import get_logger
from replyguard.services.analysis_service import ConversationAnalyzer
from replyguard.services.auto_reply_service import AutoReplyService
from replyguard.services.confidence_scorer import ConfidenceScorer
from replyguard.services.ingestion_service import IngestionService
from replyguard.services.interfaces import ConversationTriggers, KnowledgeRetriever
from replyguard.services.knowledge_service import ChromaRetriever
from replyguard.services.llm import GeminiClient, ModelClient
from replyguard.services.policy_engine import PolicyEngine
from replyguard.services.storage import SqlStorage
from replyguard.services.suggestion_service import SuggestionOrchestrator
from replyguard.services.translation_service import Translator

logger = get_logger("dependencies")


def build_model_client(config: Settings) -> Optional[ModelClient]:
    if not config.gemini_api_key:
        logger.warning("GEMINI_API_KEY not set, AI features degrade to empty results")
        return None
    return GeminiClient(
        api_key=config.gemini_api_key,
        base_url=config.gemini_base_url,
        text_model=config.gemini_text_model,
        embedding_model=config.gemini_embedding_model,
        timeout_seconds=config.model_timeout_seconds,
        max_retries=config.model_max_retries,
        base_delay_seconds=config.model_base_delay_seconds,
    )


def build_retriever(config: Settings) -> Optional[KnowledgeRetriever]:
    if not config.chroma_url:
        return None
    return ChromaRetriever(base_url=config.chroma_url, timeout_seconds=config.model_timeout_seconds)


@dataclass
class Services:
    storage: SqlStorage
    ingestion: IngestionService
    orchestrator: SuggestionOrchestrator
    analyzer: ConversationAnalyzer
    auto_reply: AutoReplyService


class ServiceFactory(ConversationTriggers):
    """Wires per-session services around long-lived clients and schedules background jobs."""

    def __init__(
        self,
        config: Settings,
        dispatcher: BackgroundDispatcher,
        model_client: Optional[ModelClient] = None,
        retriever: Optional[KnowledgeRetriever] = None,
        session_factory=SessionLocal,
    ):
        self.config = config
        self.dispatcher = dispatcher
        self.model_client = model_client
        self.retriever = retriever
        self.session_factory = session_factory
        self.policy_engine = PolicyEngine()
        self.confidence_scorer = ConfidenceScorer()
        self.translator = Translator(model_client) if model_client is not None else None

    @classmethod
    def from_settings(cls, config: Settings, dispatcher: BackgroundDispatcher) -> "ServiceFactory":
        return cls(
            config,
            dispatcher,
            model_client=build_model_client(config),
            retriever=build_retriever(config),
        )

    def build(self, db: Session) -> Services:
        storage = SqlStorage(db, default_brand_tone=self.config.default_brand_tone)
        ingestion = IngestionService(storage, triggers=self)
        orchestrator = SuggestionOrchestrator(
            storage=storage,
            model_client=self.model_client,
            retriever=self.retriever,
            policy_engine=self.policy_engine,
            confidence_scorer=self.confidence_scorer,
            translator=self.translator,
            agent_language=self.config.agent_language,
            top_k=self.config.knowledge_top_k,
        )
        analyzer = ConversationAnalyzer(
            storage=storage,
            model_client=self.model_client,
            retriever=self.retriever,
            policy_engine=self.policy_engine,
            translator=self.translator,
        )
        auto_reply = AutoReplyService(storage, orchestrator, ingestion)
        return Services(
            storage=storage,
            ingestion=ingestion,
            orchestrator=orchestrator,
            analyzer=analyzer,
            auto_reply=auto_reply,
        )

    def analyze_async(self, tenant_id: str, conversation_id: str) -> bool:
        return self.dispatcher.submit("analysis", self.run_analysis, tenant_id, conversation_id)

    def auto_reply_async(self, tenant_id: str, conversation_id: str) -> bool:
        return self.dispatcher.submit("auto_reply", self.run_auto_reply, tenant_id, conversation_id)

    def run_analysis(self, tenant_id: str, conversation_id: str) -> None:
        db = self.session_factory()
        try:
            self.build(db).analyzer.analyze(tenant_id, conversation_id)
        finally:
            db.close()

    def run_auto_reply(self, tenant_id: str, conversation_id: str) -> None:
        db = self.session_factory()
        try:
            self.build(db).auto_reply.process_auto_reply(tenant_id, conversation_id)
        finally:
            db.close()


dispatcher = BackgroundDispatcher(workers=settings.background_workers, queue_size=settings.background_queue_size)
service_factory = ServiceFactory.from_settings(settings, dispatcher)


def get_service_factory() -> ServiceFactory:
    return service_factory


def get_services(
    db: Session = Depends(get_db),
    factory: ServiceFactory = Depends(get_service_factory),
) -> Services:
    return factory.build(db)
