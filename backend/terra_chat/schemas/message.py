"""
Message-related Pydantic schemas.
"""

from pydantic import Field
from typing import Optional
from datetime import datetime

from ..enums import MessageKind, MessageStatus, SenderRole
from .base import CamelModel


class AttachmentPayload(CamelModel):
    """Inline attachment: {name, mimeType, size, dataUrl}."""
    name: str
    mime_type: str
    size: int
    data_url: str = Field(..., repr=False)


class MessageResponse(CamelModel):
    """Message as shown to one viewer."""
    id: int
    thread_id: int
    sender_id: str
    sender_name: str
    sender_role: SenderRole
    text: str = ""
    kind: MessageKind = MessageKind.TEXT
    attachment: Optional[AttachmentPayload] = None
    status: MessageStatus
    error_message: Optional[str] = None
    read_at: Optional[datetime] = None
    client_key: Optional[str] = None
    deleted_for_everyone: bool = False
    deleted_for_everyone_at: Optional[datetime] = None
    deleted_for_everyone_by: Optional[str] = None
    placeholder: Optional[str] = None  # replaces text/attachment once deleted for everyone
    created_at: datetime
