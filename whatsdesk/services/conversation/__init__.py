"""Conversation service - conversation records, status and transcripts."""

from whatsdesk.services.conversation.store import ConversationStore

__all__ = ["ConversationStore"]
