"""
Notification panel routes.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from ..database import get_db
from ..schemas.notification import NotificationFeed
from ..services.read_sync import ReadSync
from ..utils.security import Identity, get_current_identity


router = APIRouter(prefix="/api/notifications", tags=["Notifications"])


@router.get("", response_model=NotificationFeed)
async def get_notifications(
    limit: Optional[int] = Query(None, ge=1, le=100),
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """Unread message groups and newly published assets."""
    return await ReadSync(db).notification_feed(identity.user_id, limit=limit)


@router.post("/seen")
async def mark_seen(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """Move the caller's notification cursor to now."""
    seen_at = await ReadSync(db).mark_notifications_seen(identity.user_id)
    return {"ok": True, "lastSeenAt": seen_at.isoformat()}
