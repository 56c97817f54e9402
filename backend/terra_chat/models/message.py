"""
Chat message database models.
"""

from sqlalchemy import Column, Integer, String, ForeignKey, Text, Boolean, JSON, Index, UniqueConstraint
from sqlalchemy.orm import relationship

from ..database import Base, UTCDateTime, utcnow


class ChatMessage(Base):
    """Chat message with an optional inline attachment."""

    __tablename__ = "chat_messages"

    __table_args__ = (
        Index("ix_chat_messages_thread_created", "thread_id", "created_at"),
        UniqueConstraint("thread_id", "client_key", name="uq_chat_messages_client_key"),
    )

    id = Column(Integer, primary_key=True, index=True)
    thread_id = Column(Integer, ForeignKey("chat_threads.id", ondelete="CASCADE"), nullable=False)

    # Sender
    sender_id = Column(String(64), nullable=False)
    sender_name = Column(String(120), nullable=False)
    sender_role = Column(String(10), nullable=False)  # "buyer", "seller"

    # Content
    text = Column(Text, nullable=False, default="")
    kind = Column(String(10), nullable=False, default="text")  # text, image, video, audio, document
    attachment = Column(JSON, nullable=True)  # {name, mimeType, size, dataUrl}

    # Delivery
    status = Column(String(10), nullable=False, default="sent")
    error_message = Column(String(500), nullable=True)
    read_at = Column(UTCDateTime, nullable=True)
    client_key = Column(String(64), nullable=True)

    # Delete for everyone (content is kept, never rendered)
    deleted_for_everyone = Column(Boolean, nullable=False, default=False)
    deleted_for_everyone_at = Column(UTCDateTime, nullable=True)
    deleted_for_everyone_by = Column(String(64), nullable=True)

    # Timestamps
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)

    # Relationships
    thread = relationship("ChatThread", back_populates="messages")
    hides = relationship("MessageHide", back_populates="message", cascade="all, delete-orphan", passive_deletes=True)


class MessageHide(Base):
    """A message removed from one user's own view ("delete for me")."""

    __tablename__ = "chat_message_hides"

    __table_args__ = (
        UniqueConstraint("message_id", "user_id", name="uq_chat_message_hides_user"),
    )

    id = Column(Integer, primary_key=True)
    message_id = Column(Integer, ForeignKey("chat_messages.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)

    message = relationship("ChatMessage", back_populates="hides")
