"""
Read-only view of marketplace assets.
"""

from sqlalchemy import Column, String

from ..database import Base, UTCDateTime, utcnow


class MarketplaceAsset(Base):
    """Asset listing owned by the marketplace service; the chat core only reads it."""

    __tablename__ = "marketplace_assets"

    id = Column(String(64), primary_key=True)
    title = Column(String(120), nullable=False)
    seller_id = Column(String(64), nullable=False, index=True)
    seller_name = Column(String(120), nullable=False)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False, index=True)
