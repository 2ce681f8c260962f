"""Service layer orchestrations for Omega Codex."""

from .conversation import ConversationConfig, ConversationService, extract_reply

__all__ = [
    "ConversationConfig",
    "ConversationService",
    "extract_reply",
]
