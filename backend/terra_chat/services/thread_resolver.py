"""
Thread resolution: one canonical thread per (asset, buyer, seller).
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..database import dialect_insert, utcnow
from ..exceptions import ChatValidationError, NotFoundError
from ..models.asset import MarketplaceAsset
from ..models.thread import ChatThread
from ..utils.text import normalize_safe_text


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SellerRef:
    seller_id: str
    seller_name: str


class AssetDirectory:
    """Lookup of an asset's current seller. The chat core never writes assets."""

    async def resolve_seller(self, asset_id: str) -> Optional[SellerRef]:
        raise NotImplementedError


class SqlAssetDirectory(AssetDirectory):
    """Asset directory backed by the marketplace_assets table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def resolve_seller(self, asset_id: str) -> Optional[SellerRef]:
        result = await self.db.execute(
            select(MarketplaceAsset.seller_id, MarketplaceAsset.seller_name)
            .filter(MarketplaceAsset.id == asset_id)
        )
        row = result.first()
        if row is None:
            return None
        return SellerRef(seller_id=row.seller_id, seller_name=row.seller_name)


class ThreadResolver:
    """Maps (asset, buyer) to the single conversation with the asset's seller."""

    def __init__(self, db: AsyncSession, directory: Optional[AssetDirectory] = None):
        self.db = db
        self.directory = directory or SqlAssetDirectory(db)

    async def ensure_thread(self, asset_id: str, buyer_id: str, buyer_name: str) -> ChatThread:
        """Open the buyer's chat about an asset; idempotent."""
        return await self._upsert(asset_id, buyer_id, buyer_name, touch=False)

    async def ensure_thread_for_purchase(self, asset_id: str, buyer_id: str, buyer_name: str) -> ChatThread:
        """Same as ``ensure_thread`` but moves the thread to the top of both inboxes."""
        return await self._upsert(asset_id, buyer_id, buyer_name, touch=True)

    async def _upsert(self, asset_id: str, buyer_id: str, buyer_name: str, touch: bool) -> ChatThread:
        asset_id = (asset_id or "").strip()
        buyer_id = (buyer_id or "").strip()
        buyer_name = normalize_safe_text(buyer_name, settings.MAX_NAME_LENGTH)
        if not asset_id or not buyer_id or not buyer_name:
            raise ChatValidationError("Invalid data to open the chat.")

        seller = await self.directory.resolve_seller(asset_id)
        if seller is None:
            raise NotFoundError("Asset not found.")
        if seller.seller_id == buyer_id:
            raise ChatValidationError("You cannot open a chat with yourself.")

        now = utcnow()
        insert = dialect_insert(self.db)
        stmt = insert(ChatThread).values(
            asset_id=asset_id,
            buyer_id=buyer_id,
            buyer_name=buyer_name,
            seller_id=seller.seller_id,
            seller_name=seller.seller_name,
            created_at=now,
            updated_at=now,
        )
        refreshed = {
            "buyer_name": stmt.excluded.buyer_name,
            "seller_name": stmt.excluded.seller_name,
        }
        if touch:
            refreshed["updated_at"] = stmt.excluded.updated_at
        stmt = stmt.on_conflict_do_update(
            index_elements=["asset_id", "buyer_id", "seller_id"],
            set_=refreshed,
        )

        await self.db.execute(stmt)
        await self.db.commit()

        result = await self.db.execute(
            select(ChatThread)
            .filter(
                ChatThread.asset_id == asset_id,
                ChatThread.buyer_id == buyer_id,
                ChatThread.seller_id == seller.seller_id,
            )
            .execution_options(populate_existing=True)
        )
        thread = result.scalar_one()
        logger.info("Thread %s ready for asset %s (buyer %s, seller %s)", thread.id, asset_id, buyer_id, seller.seller_id)
        return thread
