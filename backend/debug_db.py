import asyncio
import os
import sys

# Add the current directory to sys.path so we can import terra_chat
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from terra_chat.database import AsyncSessionLocal, engine
from terra_chat.models.message import ChatMessage
from terra_chat.models.thread import ChatThread
from sqlalchemy import func, select

async def debug_db():
    print(f"Database URL: {engine.url}")

    async with AsyncSessionLocal() as session:
        print("\n--- THREADS ---")
        result = await session.execute(select(ChatThread).order_by(ChatThread.updated_at.desc()))
        threads = result.scalars().all()
        if not threads:
            print("No threads found.")
        for t in threads:
            count = await session.scalar(
                select(func.count(ChatMessage.id)).filter(ChatMessage.thread_id == t.id)
            )
            print(f"ID: {t.id} | Asset: {t.asset_id} | Buyer: {t.buyer_name} | Seller: {t.seller_name} | Messages: {count}")

        print("\n--- LATEST MESSAGES ---")
        result = await session.execute(select(ChatMessage).order_by(ChatMessage.id.desc()).limit(20))
        for m in result.scalars().all():
            deleted = " [deleted]" if m.deleted_for_everyone else ""
            print(f"ID: {m.id} | Thread: {m.thread_id} | {m.sender_role}:{m.sender_name} | {m.kind} | {m.status}{deleted}")

    await engine.dispose()

if __name__ == "__main__":
    if os.name == 'nt':
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
    asyncio.run(debug_db())
