"""
Deletion engine: "delete for me" and "delete for everyone".
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import dialect_insert, utcnow
from ..enums import DeleteMode, MessageKind, MessageStatus
from ..exceptions import ChatValidationError
from ..models.message import ChatMessage, MessageHide
from ..schemas.command import DeletionResponse
from ..schemas.message import MessageResponse


logger = logging.getLogger(__name__)

DELETED_BY_YOU = "You deleted this message"
DELETED_BY_OTHER = "This message was deleted"
NOT_ALLOWED_WARNING = "Some messages were already seen and cannot be deleted for everyone."


@dataclass
class DeletionResult:
    mode: DeleteMode
    deleted_ids: List[int] = field(default_factory=list)
    not_allowed_ids: List[int] = field(default_factory=list)

    @property
    def warning(self) -> Optional[str]:
        if self.mode is DeleteMode.EVERYONE and self.not_allowed_ids:
            return NOT_ALLOWED_WARNING
        return None

    def to_response(self) -> DeletionResponse:
        return DeletionResponse(
            deleted_ids=self.deleted_ids,
            not_allowed_ids=self.not_allowed_ids,
            warning=self.warning,
        )


def unique_ids(message_ids: Iterable) -> List[int]:
    """Drop empty and repeated ids, keeping the caller's order."""
    seen = []
    for message_id in message_ids:
        if message_id is None or message_id == "" or message_id in seen:
            continue
        seen.append(message_id)
    return seen


def can_delete_for_everyone(message, actor_id: str) -> bool:
    """
    Sender only, not yet deleted, and not yet seen by the recipient.
    Works on ORM rows and on wire/pending objects alike.
    """
    return (
        not message.deleted_for_everyone
        and message.sender_id == actor_id
        and MessageStatus(message.status) is not MessageStatus.READ
        and message.read_at is None
    )


def everyone_guard(actor_id: str):
    """SQL form of ``can_delete_for_everyone``, applied at mutation time."""
    return (
        ChatMessage.deleted_for_everyone.is_(False),
        ChatMessage.sender_id == actor_id,
        ChatMessage.status != MessageStatus.READ.value,
        ChatMessage.read_at.is_(None),
    )


def placeholder_for(deleted_by: Optional[str], viewer_id: Optional[str]) -> str:
    return DELETED_BY_YOU if viewer_id is not None and deleted_by == viewer_id else DELETED_BY_OTHER


def present_message(message: ChatMessage, viewer_id: Optional[str] = None) -> MessageResponse:
    """Wire form of a message for one viewer; tombstoned content is never exposed."""
    response = MessageResponse.model_validate(message)
    if not message.deleted_for_everyone:
        return response
    return response.model_copy(update={
        "text": "",
        "kind": MessageKind.TEXT,
        "attachment": None,
        "placeholder": placeholder_for(message.deleted_for_everyone_by, viewer_id),
    })


class DeletionEngine:
    """Applies a batch deletion inside one thread."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def delete(self, thread_id: int, actor_id: str, message_ids: Iterable, mode) -> DeletionResult:
        mode = DeleteMode(mode)
        ids = unique_ids(message_ids)
        if not ids:
            raise ChatValidationError("No messages to delete.")

        if mode is DeleteMode.ME:
            result = await self._hide_for_actor(thread_id, actor_id, ids)
        else:
            result = await self._delete_for_everyone(thread_id, actor_id, ids)

        await self.db.commit()
        logger.info(
            "Delete (%s) in thread %s by %s: deleted=%s not_allowed=%s",
            mode.value, thread_id, actor_id, result.deleted_ids, result.not_allowed_ids
        )
        return result

    async def _hide_for_actor(self, thread_id: int, actor_id: str, ids: List[int]) -> DeletionResult:
        found = await self.db.execute(
            select(ChatMessage.id).filter(
                ChatMessage.thread_id == thread_id,
                ChatMessage.id.in_(ids)
            )
        )
        found_ids = set(found.scalars().all())

        result = DeletionResult(mode=DeleteMode.ME)
        insert = dialect_insert(self.db)
        for message_id in ids:
            if message_id not in found_ids:
                result.not_allowed_ids.append(message_id)
                continue
            await self.db.execute(
                insert(MessageHide)
                .values(message_id=message_id, user_id=actor_id, created_at=utcnow())
                .on_conflict_do_nothing(index_elements=["message_id", "user_id"])
            )
            result.deleted_ids.append(message_id)
        return result

    async def _delete_for_everyone(self, thread_id: int, actor_id: str, ids: List[int]) -> DeletionResult:
        # One guarded UPDATE per message: a concurrent markRead wins over a stale client check.
        result = DeletionResult(mode=DeleteMode.EVERYONE)
        now = utcnow()
        for message_id in ids:
            outcome = await self.db.execute(
                update(ChatMessage)
                .where(
                    ChatMessage.thread_id == thread_id,
                    ChatMessage.id == message_id,
                    *everyone_guard(actor_id)
                )
                .values(
                    deleted_for_everyone=True,
                    deleted_for_everyone_at=now,
                    deleted_for_everyone_by=actor_id,
                )
                .execution_options(synchronize_session=False)
            )
            if outcome.rowcount == 1:
                result.deleted_ids.append(message_id)
            else:
                result.not_allowed_ids.append(message_id)
        return result
