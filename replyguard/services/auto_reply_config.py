from dataclasses import dataclass
from typing import Optional

from replyguard.models import AutoReplyConversationConfig, AutoReplyGlobalConfig

DEFAULT_ENABLED = False
DEFAULT_THRESHOLD = 0.8


@dataclass(frozen=True)
class EffectiveAutoReplyConfig:
    enabled: bool
    confidence_threshold: float
    source: str  # global, conversation


def resolve_effective_config(
    conversation_config: Optional[AutoReplyConversationConfig],
    global_config: Optional[AutoReplyGlobalConfig],
) -> EffectiveAutoReplyConfig:
    """A conversation row wins; an unset conversation threshold borrows the global one."""
    global_threshold = DEFAULT_THRESHOLD
    global_enabled = DEFAULT_ENABLED
    if global_config is not None:
        global_enabled = bool(global_config.enabled)
        if global_config.confidence_threshold is not None:
            global_threshold = float(global_config.confidence_threshold)

    if conversation_config is not None:
        threshold = conversation_config.confidence_threshold
        return EffectiveAutoReplyConfig(
            enabled=bool(conversation_config.enabled),
            confidence_threshold=float(threshold) if threshold is not None else global_threshold,
            source="conversation",
        )

    return EffectiveAutoReplyConfig(enabled=global_enabled, confidence_threshold=global_threshold, source="global")
