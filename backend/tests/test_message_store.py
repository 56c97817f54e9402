import asyncio

import pytest
from sqlalchemy import func, select

from terra_chat.enums import MessageKind, MessageStatus, SenderRole
from terra_chat.exceptions import ChatValidationError, NotFoundError
from terra_chat.models.message import ChatMessage
from terra_chat.schemas.message import AttachmentPayload
from terra_chat.services.attachment_codec import AttachmentCodec
from terra_chat.services.message_store import MessageStore
from terra_chat.services.thread_resolver import ThreadResolver

from conftest import ASSET_ID, BUYER_ID, BUYER_NAME, SELLER_ID, SELLER_NAME


@pytest.fixture
async def thread(db, assets):
    return await ThreadResolver(db).ensure_thread(ASSET_ID, BUYER_ID, BUYER_NAME)


@pytest.fixture
def store(db):
    return MessageStore(db)


async def send(store, thread, role=SenderRole.BUYER, text="Hola", **kwargs):
    sender_id, sender_name = (BUYER_ID, BUYER_NAME) if role is SenderRole.BUYER else (SELLER_ID, SELLER_NAME)
    result = await store.append_message(thread.id, sender_id, sender_name, role, text, **kwargs)
    return result.message


async def count_messages(db) -> int:
    return await db.scalar(select(func.count(ChatMessage.id)))


async def test_text_message_is_stored_as_sent(store, thread):
    message = await send(store, thread, text="Hola")

    assert message.id is not None
    assert message.status == MessageStatus.SENT.value
    assert message.kind == MessageKind.TEXT.value
    assert message.text == "Hola"
    assert message.read_at is None
    assert message.deleted_for_everyone is False


async def test_send_bumps_thread_updated_at(store, thread):
    before = thread.updated_at
    await asyncio.sleep(0.01)
    message = await send(store, thread)

    refreshed = await store.get_thread(thread.id)
    assert refreshed.updated_at == message.created_at
    assert refreshed.updated_at > before


async def test_text_is_normalized_and_capped(store, thread):
    message = await send(store, thread, text="  hola \n\n  que   tal  " + "x" * 600)

    assert message.text.startswith("hola que tal ")
    assert len(message.text) == 500


async def test_empty_message_is_rejected(db, store, thread):
    with pytest.raises(ChatValidationError, match="Write a message"):
        await send(store, thread, text="   ")
    assert await count_messages(db) == 0


async def test_missing_thread_writes_nothing(db, store, thread):
    with pytest.raises(NotFoundError):
        await store.append_message(9999, BUYER_ID, BUYER_NAME, SenderRole.BUYER, "Hola")
    assert await count_messages(db) == 0


async def test_attachment_kind_is_inferred(store, thread):
    attachment = AttachmentCodec().encode(b"fake-png", "image/png", "photo.png")
    message = await send(store, thread, role=SenderRole.SELLER, text="", attachment=attachment)

    assert message.kind == MessageKind.IMAGE.value
    assert message.attachment["mimeType"] == "image/png"
    assert message.attachment["size"] == 8
    assert message.attachment["dataUrl"].startswith("data:image/png;base64,")


async def test_kind_must_match_attachment(store, thread):
    attachment = AttachmentCodec().encode(b"fake-png", "image/png", "photo.png")
    with pytest.raises(ChatValidationError, match="does not match"):
        await send(store, thread, text="", kind=MessageKind.VIDEO, attachment=attachment)


async def test_oversized_attachment_is_rejected_before_persistence(db, store, thread):
    oversized = AttachmentPayload(
        name="huge.png",
        mime_type="image/png",
        size=30 * 1024 * 1024,
        data_url="data:image/png;base64,aGVsbG8=",
    )
    with pytest.raises(ChatValidationError, match="limit"):
        await send(store, thread, role=SenderRole.SELLER, text="", attachment=oversized)
    assert await count_messages(db) == 0


async def test_messages_listed_oldest_first(store, thread):
    first = await send(store, thread, text="one")
    second = await send(store, thread, role=SenderRole.SELLER, text="two")
    third = await send(store, thread, text="three")

    messages = await store.list_messages(thread.id)

    assert [m.id for m in messages] == [first.id, second.id, third.id]


async def test_repeated_client_key_is_a_no_op(db, store, thread):
    first = await store.append_message(thread.id, BUYER_ID, BUYER_NAME, "buyer", "Hola", client_key="k-1")
    again = await store.append_message(thread.id, BUYER_ID, BUYER_NAME, "buyer", "Hola", client_key="k-1")

    assert first.duplicate is False
    assert again.duplicate is True
    assert again.message.id == first.message.id
    assert await count_messages(db) == 1


async def test_mark_read_flips_counterpart_messages_only(store, thread):
    from_seller = [await send(store, thread, role=SenderRole.SELLER, text=f"s{i}") for i in range(3)]
    from_buyer = [await send(store, thread, role=SenderRole.BUYER, text=f"b{i}") for i in range(3)]

    changed = await store.mark_read(thread.id, SenderRole.BUYER)

    assert changed == 3
    messages = {m.id: m for m in await store.list_messages(thread.id)}
    for message in from_seller:
        assert messages[message.id].status == MessageStatus.READ.value
        assert messages[message.id].read_at is not None
    for message in from_buyer:
        assert messages[message.id].status == MessageStatus.SENT.value
        assert messages[message.id].read_at is None


async def test_mark_read_is_idempotent_and_only_bumps_on_change(store, thread):
    await send(store, thread, role=SenderRole.SELLER, text="hi")
    assert await store.mark_read(thread.id, SenderRole.BUYER) == 1

    after_first = (await store.get_thread(thread.id)).updated_at
    await asyncio.sleep(0.01)

    assert await store.mark_read(thread.id, SenderRole.BUYER) == 0
    assert (await store.get_thread(thread.id)).updated_at == after_first


async def test_list_threads_most_recent_first(db, store, assets):
    resolver = ThreadResolver(db)
    older = await resolver.ensure_thread(ASSET_ID, BUYER_ID, BUYER_NAME)
    await asyncio.sleep(0.01)
    newer = await resolver.ensure_thread(ASSET_ID, "wallet-second-buyer", "Second")

    assert [t.id for t in await store.list_threads(SELLER_ID)] == [newer.id, older.id]

    await asyncio.sleep(0.01)
    await send(store, older, text="bump")

    assert [t.id for t in await store.list_threads(SELLER_ID)] == [older.id, newer.id]
    assert [t.id for t in await store.list_threads(BUYER_ID)] == [older.id]
