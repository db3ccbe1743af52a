from backend_octra.conversation.session import ConversationSession, SessionRegistry

__all__ = ["ConversationSession", "SessionRegistry"]
