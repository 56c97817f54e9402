"""
Notification cursor model.
"""

from sqlalchemy import Column, Integer, String

from ..database import Base, UTCDateTime, utcnow


class NotificationCursor(Base):
    """When a user last opened the notification panel."""

    __tablename__ = "notification_cursors"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), unique=True, nullable=False, index=True)
    last_seen_at = Column(UTCDateTime, default=utcnow, nullable=False)
