from persona_core.chat.session import ChatSessionEvent, PendingTurn, StreamingChatSession

__all__ = ["StreamingChatSession", "ChatSessionEvent", "PendingTurn"]
