"""
Payloads of the marketplace command endpoint.
"""

from pydantic import Field
from typing import List, Optional

from ..enums import DeleteMode, MessageKind, SenderRole
from .base import CamelModel
from .message import AttachmentPayload


class EnsureThreadCommand(CamelModel):
    """Open (or reopen) the buyer's chat about an asset."""
    asset_id: str = Field(..., min_length=1, max_length=64)
    buyer_name: Optional[str] = None


class SendMessageCommand(CamelModel):
    """Schema for sending a chat message."""
    thread_id: int
    text: str = ""
    kind: Optional[MessageKind] = None
    sender_role: Optional[SenderRole] = None
    attachment: Optional[AttachmentPayload] = None
    client_key: Optional[str] = Field(None, min_length=1, max_length=64)


class MarkReadCommand(CamelModel):
    thread_id: int
    reader_role: Optional[SenderRole] = None


class DeleteMessagesCommand(CamelModel):
    thread_id: int
    message_ids: List[int]
    mode: DeleteMode


class DeletionResponse(CamelModel):
    """Partial success result of a batch deletion."""
    deleted_ids: List[int] = []
    not_allowed_ids: List[int] = []
    warning: Optional[str] = None
