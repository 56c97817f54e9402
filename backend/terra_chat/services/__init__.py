"""
Services package.
"""

from .attachment_codec import AttachmentCodec, PreviewRegistry
from .deletion import DeletionEngine
from .message_store import MessageStore
from .read_sync import ReadSync
from .thread_resolver import ThreadResolver

__all__ = ["AttachmentCodec", "PreviewRegistry", "DeletionEngine", "MessageStore", "ReadSync", "ThreadResolver"]
