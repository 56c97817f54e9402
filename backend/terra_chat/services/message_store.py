"""
Message store: durable threads and messages, the source of truth.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..database import utcnow
from ..enums import MessageKind, MessageStatus, SenderRole
from ..exceptions import ChatValidationError, NotFoundError, StorageError
from ..models.message import ChatMessage, MessageHide
from ..models.thread import ChatThread
from ..schemas.message import AttachmentPayload
from ..utils.text import normalize_safe_text
from .attachment_codec import AttachmentCodec, attachment_kind
from .deletion import DeletionEngine, DeletionResult
from .delivery import statuses_leading_to


logger = logging.getLogger(__name__)


@dataclass
class AppendResult:
    message: ChatMessage
    duplicate: bool = False


class MessageStore:
    """Service for thread and message persistence."""

    def __init__(self, db: AsyncSession, codec: Optional[AttachmentCodec] = None):
        self.db = db
        self.codec = codec or AttachmentCodec()

    async def get_thread(self, thread_id: int) -> ChatThread:
        result = await self.db.execute(
            select(ChatThread)
            .filter(ChatThread.id == thread_id)
            .execution_options(populate_existing=True)
        )
        thread = result.scalar_one_or_none()
        if not thread:
            raise NotFoundError("Conversation not found.")
        return thread

    async def list_threads(self, user_id: str) -> List[ChatThread]:
        """Threads the user takes part in, most recent first."""
        result = await self.db.execute(
            select(ChatThread)
            .filter((ChatThread.buyer_id == user_id) | (ChatThread.seller_id == user_id))
            .order_by(ChatThread.updated_at.desc(), ChatThread.id.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def list_messages(self, thread_id: int, viewer_id: Optional[str] = None) -> List[ChatMessage]:
        """Messages oldest first; ties keep insertion order. Hidden rows are left out for their owner."""
        query = (
            select(ChatMessage)
            .filter(ChatMessage.thread_id == thread_id)
            .order_by(ChatMessage.created_at, ChatMessage.id)
            .execution_options(populate_existing=True)
        )
        if viewer_id is not None:
            hidden = select(MessageHide.message_id).filter(MessageHide.user_id == viewer_id)
            query = query.filter(ChatMessage.id.not_in(hidden))

        result = await self.db.execute(query)
        return list(result.scalars().all())

    def validate_content(self, text: str, kind, attachment: Optional[AttachmentPayload]):
        text = normalize_safe_text(text or "", settings.MAX_TEXT_LENGTH)
        if not text and attachment is None:
            raise ChatValidationError("Write a message.")

        if attachment is not None:
            self.codec.validate(attachment)
            inferred = attachment_kind(attachment.mime_type)
        else:
            inferred = MessageKind.TEXT

        if kind is not None and MessageKind(kind) is not inferred:
            raise ChatValidationError(f"Message kind {MessageKind(kind).value} does not match its content.")
        return text, inferred

    async def append_message(
        self,
        thread_id: int,
        sender_id: str,
        sender_name: str,
        sender_role,
        text: str,
        kind=None,
        attachment: Optional[AttachmentPayload] = None,
        client_key: Optional[str] = None
    ) -> AppendResult:
        """
        Persist a message and bump the thread in one transaction.

        Nothing is written when the thread is missing. A repeated
        ``client_key`` in the same thread returns the stored message.
        """
        sender_role = SenderRole(sender_role)
        sender_name = normalize_safe_text(sender_name, settings.MAX_NAME_LENGTH)
        if not sender_id or not sender_name:
            raise ChatValidationError("Invalid message data.")
        text, kind = self.validate_content(text, kind, attachment)

        await self.get_thread(thread_id)

        if client_key:
            existing = await self._find_by_client_key(thread_id, client_key)
            if existing is not None:
                logger.info("Duplicate send %s in thread %s ignored", client_key, thread_id)
                return AppendResult(message=existing, duplicate=True)

        now = utcnow()
        message = ChatMessage(
            thread_id=thread_id,
            sender_id=sender_id,
            sender_name=sender_name,
            sender_role=sender_role.value,
            text=text,
            kind=kind.value,
            attachment=attachment.model_dump(mode="json", by_alias=True) if attachment else None,
            status=MessageStatus.SENT.value,
            client_key=client_key,
            created_at=now,
        )
        self.db.add(message)
        await self.db.execute(
            update(ChatThread)
            .where(ChatThread.id == thread_id)
            .values(updated_at=now)
        )

        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            if client_key:
                existing = await self._find_by_client_key(thread_id, client_key)
                if existing is not None:
                    return AppendResult(message=existing, duplicate=True)
            # thread removed between the check and the insert
            raise NotFoundError("Conversation not found.")
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception("Could not store message in thread %s", thread_id)
            raise StorageError("Could not save the message.")

        await self.db.refresh(message)
        logger.info("Message %s (%s) appended to thread %s by %s", message.id, kind.value, thread_id, sender_id)
        return AppendResult(message=message)

    async def _find_by_client_key(self, thread_id: int, client_key: str) -> Optional[ChatMessage]:
        result = await self.db.execute(
            select(ChatMessage).filter(
                ChatMessage.thread_id == thread_id,
                ChatMessage.client_key == client_key
            )
        )
        return result.scalar_one_or_none()

    async def mark_read(self, thread_id: int, reader_role) -> int:
        """
        Flip every counterpart message that can still become read.
        Returns how many changed; the thread is only bumped when that is > 0.
        """
        reader_role = SenderRole(reader_role)
        await self.get_thread(thread_id)

        now = utcnow()
        readable = [status.value for status in statuses_leading_to(MessageStatus.READ)]
        result = await self.db.execute(
            update(ChatMessage)
            .where(
                ChatMessage.thread_id == thread_id,
                ChatMessage.sender_role != reader_role.value,
                ChatMessage.status.in_(readable),
            )
            .values(status=MessageStatus.READ.value, read_at=now)
            .execution_options(synchronize_session=False)
        )
        changed = result.rowcount or 0

        if changed:
            await self.db.execute(
                update(ChatThread)
                .where(ChatThread.id == thread_id)
                .values(updated_at=now)
            )
        await self.db.commit()

        if changed:
            logger.info("Marked %d message(s) read in thread %s for %s", changed, thread_id, reader_role.value)
        return changed

    async def delete_messages(self, thread_id: int, actor_id: str, message_ids: Iterable, mode) -> DeletionResult:
        await self.get_thread(thread_id)
        return await DeletionEngine(self.db).delete(thread_id, actor_id, message_ids, mode)
