"""
Chat client package.
"""

from .poller import Poller
from .session import ConversationSession, Outbox, PendingMessage
from .transport import AiohttpTransport, ChatTransport

__all__ = ["Poller", "ConversationSession", "Outbox", "PendingMessage", "AiohttpTransport", "ChatTransport"]
