"""
Chat thread database model.
"""

from sqlalchemy import Column, Integer, String, Index, UniqueConstraint
from sqlalchemy.orm import relationship

from ..database import Base, UTCDateTime, utcnow


class ChatThread(Base):
    """One conversation between a buyer and the seller of an asset."""

    __tablename__ = "chat_threads"

    __table_args__ = (
        UniqueConstraint("asset_id", "buyer_id", "seller_id", name="uq_chat_threads_participants"),
        # Thread listing per participant ordered by recency
        Index("ix_chat_threads_buyer_updated", "buyer_id", "updated_at"),
        Index("ix_chat_threads_seller_updated", "seller_id", "updated_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    asset_id = Column(String(64), nullable=False, index=True)

    # Participants (display names refreshed on every ensure)
    buyer_id = Column(String(64), nullable=False)
    buyer_name = Column(String(120), nullable=False)
    seller_id = Column(String(64), nullable=False)
    seller_name = Column(String(120), nullable=False)

    # Timestamps
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, nullable=False)

    # Relationships
    messages = relationship(
        "ChatMessage",
        back_populates="thread",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ChatMessage.created_at"
    )

    def role_of(self, user_id: str):
        """Return "buyer", "seller" or None for a user id."""
        if user_id == self.buyer_id:
            return "buyer"
        if user_id == self.seller_id:
            return "seller"
        return None

    def counterpart_name(self, user_id: str) -> str:
        return self.seller_name if user_id == self.buyer_id else self.buyer_name
