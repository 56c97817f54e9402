"""
Notification feed schemas.
"""

from typing import List, Literal
from datetime import datetime

from .base import CamelModel


class NotificationItem(CamelModel):
    id: str
    type: Literal["message", "asset"]
    text: str
    created_at: datetime
    href: str


class NotificationFeed(CamelModel):
    items: List[NotificationItem] = []
    unread_count: int = 0
