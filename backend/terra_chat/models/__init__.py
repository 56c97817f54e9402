"""
Database models package.
"""

from .asset import MarketplaceAsset
from .thread import ChatThread
from .message import ChatMessage, MessageHide
from .notification import NotificationCursor

__all__ = ["MarketplaceAsset", "ChatThread", "ChatMessage", "MessageHide", "NotificationCursor"]
