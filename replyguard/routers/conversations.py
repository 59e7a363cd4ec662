from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException

from replyguard.dependencies import Services, get_services
from replyguard.logging_config import get_logger
from replyguard.schemas.auto_reply import AutoReplyConfigResponse
from replyguard.schemas.message import (
    ConversationCreateRequest,
    ConversationCreateResponse,
    MessageRequest,
    MessageResponse,
)
from replyguard.schemas.suggestion import ConversationMetadataSchema, SuggestionSchema, SuggestionsResponse
from replyguard.services.ingestion_service import normalize_message
from replyguard.services.storage import ConversationNotFoundError

logger = get_logger("conversations_router")

router = APIRouter(prefix="/conversations", tags=["conversations"])


def get_tenant_id(x_tenant_id: str = Header(...)) -> str:
    tenant_id = x_tenant_id.strip()
    if not tenant_id:
        raise HTTPException(status_code=400, detail="X-Tenant-ID header is empty")
    return tenant_id


@router.post("", response_model=ConversationCreateResponse)
def create_conversation(
    request: ConversationCreateRequest,
    tenant_id: str = Depends(get_tenant_id),
    services: Services = Depends(get_services),
):
    conversation_id = services.ingestion.create_conversation(tenant_id, request.customer_id, request.product_id)
    return ConversationCreateResponse(conversation_id=conversation_id)


@router.post("/{conversation_id}/messages", response_model=MessageResponse)
def ingest_message(
    conversation_id: UUID,
    request: MessageRequest,
    tenant_id: str = Depends(get_tenant_id),
    services: Services = Depends(get_services),
):
    """Store a customer or agent message and schedule analysis/auto-reply."""
    try:
        normalized = normalize_message(
            request.content,
            request.sender,
            request.channel,
            str(conversation_id),
            timestamp=request.timestamp,
            language=request.language,
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    try:
        message_id = services.ingestion.ingest_message(tenant_id, normalized)
    except ConversationNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return MessageResponse(success=True, message_id=message_id, conversation_id=conversation_id)


@router.post("/{conversation_id}/suggestions", response_model=SuggestionsResponse)
def get_suggestions(
    conversation_id: UUID,
    tenant_id: str = Depends(get_tenant_id),
    services: Services = Depends(get_services),
):
    """Agent-assist: validated reply suggestions. Model outages yield an empty list, not an error."""
    result = services.orchestrator.get_reply_suggestions(tenant_id, str(conversation_id))

    metadata = None
    if result.metadata is not None:
        metadata = ConversationMetadataSchema.model_validate(result.metadata)

    return SuggestionsResponse(
        suggestions=[SuggestionSchema(**s.to_dict()) for s in result.suggestions],
        context_used=result.context_used,
        metadata=metadata,
    )


@router.get("/{conversation_id}/auto-reply", response_model=AutoReplyConfigResponse)
def get_auto_reply_config(
    conversation_id: UUID,
    tenant_id: str = Depends(get_tenant_id),
    services: Services = Depends(get_services),
):
    try:
        config = services.auto_reply.resolve_effective_config(tenant_id, str(conversation_id))
    except ConversationNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return AutoReplyConfigResponse(
        enabled=config.enabled,
        confidence_threshold=config.confidence_threshold,
        source=config.source,
    )
