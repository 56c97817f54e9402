"""
Thread-related Pydantic schemas.
"""

from typing import List
from datetime import datetime

from .base import CamelModel
from .message import MessageResponse


class ThreadResponse(CamelModel):
    """Thread response schema."""
    id: int
    asset_id: str
    buyer_id: str
    buyer_name: str
    seller_id: str
    seller_name: str
    created_at: datetime
    updated_at: datetime


class ThreadListItem(ThreadResponse):
    """Thread list entry with the viewer's unread count."""
    unread_count: int = 0


class ThreadWithMessages(ThreadResponse):
    """Thread with the viewer's message history."""
    messages: List[MessageResponse] = []
