"""
Enumerations shared by the database layer, the wire schemas and the client.
"""

from enum import Enum


class MessageStatus(str, Enum):
    SENDING = "sending"
    SENT = "sent"
    READ = "read"
    FAILED = "failed"


class MessageKind(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"


class SenderRole(str, Enum):
    BUYER = "buyer"
    SELLER = "seller"

    @property
    def counterpart(self) -> "SenderRole":
        return SenderRole.SELLER if self is SenderRole.BUYER else SenderRole.BUYER


class DeleteMode(str, Enum):
    ME = "me"
    EVERYONE = "everyone"
