import asyncio

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from terra_chat.exceptions import ChatValidationError, NotFoundError
from terra_chat.models.thread import ChatThread
from terra_chat.services.thread_resolver import AssetDirectory, SellerRef, ThreadResolver

from conftest import ASSET_ID, BUYER_ID, BUYER_NAME, OWN_ASSET_ID, SELLER_ID, SELLER_NAME


async def count_threads(db) -> int:
    return await db.scalar(select(func.count(ChatThread.id)))


async def test_first_open_creates_thread(db, assets):
    thread = await ThreadResolver(db).ensure_thread(ASSET_ID, BUYER_ID, BUYER_NAME)

    assert thread.asset_id == ASSET_ID
    assert (thread.buyer_id, thread.buyer_name) == (BUYER_ID, BUYER_NAME)
    assert (thread.seller_id, thread.seller_name) == (SELLER_ID, SELLER_NAME)
    assert thread.created_at.tzinfo is not None


async def test_reopen_returns_same_thread(db, assets):
    resolver = ThreadResolver(db)
    first = await resolver.ensure_thread(ASSET_ID, BUYER_ID, BUYER_NAME)
    second = await resolver.ensure_thread(ASSET_ID, BUYER_ID, BUYER_NAME)

    assert second.id == first.id
    assert await count_threads(db) == 1


async def test_reopen_refreshes_display_names_only(db, assets):
    resolver = ThreadResolver(db)
    first = await resolver.ensure_thread(ASSET_ID, BUYER_ID, BUYER_NAME)
    updated_at = first.updated_at

    again = await resolver.ensure_thread(ASSET_ID, BUYER_ID, "  Bruno   Diaz ")

    assert again.buyer_name == "Bruno Diaz"
    assert again.updated_at == updated_at


async def test_purchase_path_bumps_updated_at(db, assets):
    resolver = ThreadResolver(db)
    first = await resolver.ensure_thread(ASSET_ID, BUYER_ID, BUYER_NAME)
    updated_at = first.updated_at

    await asyncio.sleep(0.01)
    purchased = await resolver.ensure_thread_for_purchase(ASSET_ID, BUYER_ID, BUYER_NAME)

    assert purchased.id == first.id
    assert purchased.updated_at > updated_at


async def test_concurrent_first_opens_share_one_thread(db, session_factory, assets):
    async def open_thread():
        async with session_factory() as session:
            thread = await ThreadResolver(session).ensure_thread(ASSET_ID, BUYER_ID, BUYER_NAME)
            return thread.id

    ids = await asyncio.gather(*(open_thread() for _ in range(5)))

    assert len(set(ids)) == 1
    assert await count_threads(db) == 1


async def test_duplicate_participants_are_rejected_by_the_database(db, assets):
    thread = await ThreadResolver(db).ensure_thread(ASSET_ID, BUYER_ID, BUYER_NAME)

    db.add(ChatThread(
        asset_id=thread.asset_id,
        buyer_id=thread.buyer_id,
        buyer_name="Other",
        seller_id=thread.seller_id,
        seller_name="Other"
    ))
    with pytest.raises(IntegrityError):
        await db.commit()
    await db.rollback()

    assert await count_threads(db) == 1


async def test_unknown_asset_is_not_found(db, assets):
    with pytest.raises(NotFoundError):
        await ThreadResolver(db).ensure_thread("missing", BUYER_ID, BUYER_NAME)
    assert await count_threads(db) == 0


async def test_seller_cannot_chat_with_themself(db, assets):
    with pytest.raises(ChatValidationError, match="yourself"):
        await ThreadResolver(db).ensure_thread(OWN_ASSET_ID, BUYER_ID, BUYER_NAME)


@pytest.mark.parametrize("asset_id,buyer_id,buyer_name", [
    ("", BUYER_ID, BUYER_NAME),
    (ASSET_ID, "  ", BUYER_NAME),
    (ASSET_ID, BUYER_ID, "   "),
])
async def test_blank_inputs_are_rejected(db, assets, asset_id, buyer_id, buyer_name):
    with pytest.raises(ChatValidationError):
        await ThreadResolver(db).ensure_thread(asset_id, buyer_id, buyer_name)


async def test_custom_asset_directory(db):
    class StaticDirectory(AssetDirectory):
        async def resolve_seller(self, asset_id):
            return SellerRef(seller_id="remote-seller", seller_name="Remote")

    thread = await ThreadResolver(db, directory=StaticDirectory()).ensure_thread("remote-asset", BUYER_ID, BUYER_NAME)

    assert thread.seller_id == "remote-seller"
