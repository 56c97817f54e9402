"""
Read receipts, unread aggregation and the notification feed.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..database import dialect_insert, utcnow
from ..enums import MessageStatus, SenderRole
from ..exceptions import ForbiddenError
from ..models.asset import MarketplaceAsset
from ..models.message import ChatMessage, MessageHide
from ..models.notification import NotificationCursor
from ..models.thread import ChatThread
from ..schemas.notification import NotificationFeed, NotificationItem
from .message_store import MessageStore


logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def participant_role(thread: ChatThread, user_id: str) -> SenderRole:
    """Role of a user in a thread; ForbiddenError for outsiders."""
    role = thread.role_of(user_id)
    if role is None:
        raise ForbiddenError("You are not part of this conversation.")
    return SenderRole(role)


class ReadSync:
    """Read-state propagation and the unread projection over the message store."""

    def __init__(self, db: AsyncSession, store: Optional[MessageStore] = None):
        self.db = db
        self.store = store or MessageStore(db)

    async def mark_thread_read(self, thread_id: int, viewer_id: str) -> int:
        """Called while the viewer has the thread open. Idempotent."""
        thread = await self.store.get_thread(thread_id)
        role = participant_role(thread, viewer_id)
        return await self.store.mark_read(thread_id, role)

    async def unread_counts(self, user_id: str) -> Dict[int, int]:
        """Unread counterpart messages per thread the user takes part in."""
        hidden = select(MessageHide.message_id).filter(MessageHide.user_id == user_id)
        result = await self.db.execute(
            select(ChatMessage.thread_id, func.count(ChatMessage.id))
            .join(ChatThread, ChatThread.id == ChatMessage.thread_id)
            .filter(
                (ChatThread.buyer_id == user_id) | (ChatThread.seller_id == user_id),
                ChatMessage.sender_id != user_id,
                ChatMessage.status.not_in([MessageStatus.READ.value, MessageStatus.FAILED.value]),
                ChatMessage.deleted_for_everyone.is_(False),
                ChatMessage.id.not_in(hidden),
            )
            .group_by(ChatMessage.thread_id)
        )
        return {thread_id: count for thread_id, count in result.all()}

    async def total_unread(self, user_id: str) -> int:
        return sum((await self.unread_counts(user_id)).values())

    async def last_seen_at(self, user_id: str) -> datetime:
        result = await self.db.execute(
            select(NotificationCursor.last_seen_at).filter(NotificationCursor.user_id == user_id)
        )
        return result.scalar_one_or_none() or EPOCH

    async def mark_notifications_seen(self, user_id: str) -> datetime:
        """Move the user's cursor to now. Only gates informational items."""
        now = utcnow()
        insert = dialect_insert(self.db)
        stmt = insert(NotificationCursor).values(user_id=user_id, last_seen_at=now)
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id"],
            set_={"last_seen_at": stmt.excluded.last_seen_at},
        )
        await self.db.execute(stmt)
        await self.db.commit()
        return now

    async def notification_feed(self, user_id: str, limit: Optional[int] = None) -> NotificationFeed:
        """
        Unread message groups (one per thread) plus assets published by
        other sellers since the user last opened the panel.
        """
        limit = limit or settings.NOTIFICATION_LIMIT
        counts = await self.unread_counts(user_id)
        items: List[NotificationItem] = []

        if counts:
            threads = await self.db.execute(
                select(ChatThread).filter(ChatThread.id.in_(list(counts)))
            )
            latest = await self.db.execute(
                select(ChatMessage.thread_id, func.max(ChatMessage.created_at))
                .filter(
                    ChatMessage.thread_id.in_(list(counts)),
                    ChatMessage.sender_id != user_id,
                )
                .group_by(ChatMessage.thread_id)
            )
            latest_by_thread = {thread_id: created_at for thread_id, created_at in latest.all()}

            for thread in threads.scalars().all():
                created_at = latest_by_thread.get(thread.id) or thread.updated_at
                if created_at.tzinfo is None:
                    created_at = created_at.replace(tzinfo=timezone.utc)
                items.append(NotificationItem(
                    id=f"msg-{thread.id}",
                    type="message",
                    text=f"{counts[thread.id]} new message(s) from {thread.counterpart_name(user_id)}",
                    created_at=created_at,
                    href=f"/chats?thread={thread.id}",
                ))

        seen_at = await self.last_seen_at(user_id)
        assets = await self.db.execute(
            select(MarketplaceAsset).filter(
                MarketplaceAsset.seller_id != user_id,
                MarketplaceAsset.created_at > seen_at,
            )
        )
        for asset in assets.scalars().all():
            items.append(NotificationItem(
                id=f"asset-{asset.id}",
                type="asset",
                text=f"New token published: {asset.title}",
                created_at=asset.created_at,
                href="/buyer",
            ))

        items.sort(key=lambda item: item.created_at, reverse=True)
        return NotificationFeed(items=items[:limit], unread_count=len(items))
