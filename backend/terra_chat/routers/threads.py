"""
Thread listing and history routes.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from ..database import get_db
from ..exceptions import ChatError
from ..schemas.message import MessageResponse
from ..schemas.thread import ThreadListItem, ThreadResponse, ThreadWithMessages
from ..services.deletion import present_message
from ..services.message_store import MessageStore
from ..services.read_sync import ReadSync, participant_role
from ..utils.security import Identity, get_current_identity


router = APIRouter(prefix="/api/chat", tags=["Chat threads"])


async def _load_member_thread(store: MessageStore, thread_id: int, user_id: str):
    try:
        thread = await store.get_thread(thread_id)
        participant_role(thread, user_id)
    except ChatError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return thread


@router.get("/threads", response_model=List[ThreadListItem])
async def list_threads(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """List the caller's threads, most recently active first."""
    threads = await MessageStore(db).list_threads(identity.user_id)
    counts = await ReadSync(db).unread_counts(identity.user_id)

    return [
        ThreadListItem(
            **ThreadResponse.model_validate(thread).model_dump(),
            unread_count=counts.get(thread.id, 0)
        )
        for thread in threads
    ]


@router.get("/threads/{thread_id}", response_model=ThreadWithMessages)
async def get_thread(
    thread_id: int,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """Get a thread with the caller's view of its history."""
    store = MessageStore(db)
    thread = await _load_member_thread(store, thread_id, identity.user_id)
    messages = await store.list_messages(thread_id, viewer_id=identity.user_id)

    return {
        **ThreadResponse.model_validate(thread).model_dump(),
        "messages": [present_message(msg, identity.user_id) for msg in messages]
    }


@router.get("/threads/{thread_id}/messages", response_model=List[MessageResponse])
async def list_messages(
    thread_id: int,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """Messages of a thread, oldest first, as the caller sees them."""
    store = MessageStore(db)
    await _load_member_thread(store, thread_id, identity.user_id)
    messages = await store.list_messages(thread_id, viewer_id=identity.user_id)
    return [present_message(msg, identity.user_id) for msg in messages]


@router.get("/unread")
async def unread_summary(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """Unread counts per thread plus the total."""
    counts = await ReadSync(db).unread_counts(identity.user_id)
    return {
        "total": sum(counts.values()),
        "threads": {str(thread_id): count for thread_id, count in counts.items()}
    }
