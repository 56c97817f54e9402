"""
Marketplace chat command endpoint.

One RPC style route; the ``action`` field selects the operation. Every
response is ``{"ok": true, ...}`` or ``{"ok": false, "message": ...}``.
"""

import logging
from typing import Any, Awaitable, Callable, Dict

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..exceptions import ChatError, ChatValidationError, ForbiddenError
from ..schemas.command import (
    DeleteMessagesCommand,
    EnsureThreadCommand,
    MarkReadCommand,
    SendMessageCommand,
)
from ..schemas.thread import ThreadResponse
from ..services.deletion import present_message
from ..services.message_store import MessageStore
from ..services.read_sync import participant_role
from ..services.thread_resolver import ThreadResolver
from ..utils.security import Identity, get_current_identity


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/marketplace", tags=["Marketplace chat"])

CommandHandler = Callable[[Dict[str, Any], Identity, AsyncSession], Awaitable[Dict[str, Any]]]


def _error_rank(error: dict) -> int:
    # required fields, then types/formats, then sizes and enums
    if error["type"] == "missing":
        return 0
    if error["type"].endswith("_type") or error["type"].endswith("_parsing"):
        return 1
    return 2


def parse_command(model: type, payload: Dict[str, Any]) -> BaseModel:
    """Validate a payload, reporting the most basic problem first."""
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        error = sorted(e.errors(), key=_error_rank)[0]
        field = ".".join(str(part) for part in error["loc"])
        if error["type"] == "missing":
            raise ChatValidationError(f"Missing field: {field}")
        raise ChatValidationError(f"Invalid field {field}: {error['msg']}")


def failure(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"ok": False, "message": message}, status_code=status_code)


async def ensure_thread(payload, identity: Identity, db: AsyncSession):
    command = parse_command(EnsureThreadCommand, payload)
    thread = await ThreadResolver(db).ensure_thread(
        command.asset_id,
        identity.user_id,
        command.buyer_name or identity.display_name
    )
    return {"thread": ThreadResponse.model_validate(thread).to_wire()}


async def ensure_thread_on_purchase(payload, identity: Identity, db: AsyncSession):
    command = parse_command(EnsureThreadCommand, payload)
    thread = await ThreadResolver(db).ensure_thread_for_purchase(
        command.asset_id,
        identity.user_id,
        command.buyer_name or identity.display_name
    )
    return {"thread": ThreadResponse.model_validate(thread).to_wire()}


async def send_message(payload, identity: Identity, db: AsyncSession):
    command = parse_command(SendMessageCommand, payload)
    store = MessageStore(db)
    store.validate_content(command.text, command.kind, command.attachment)

    thread = await store.get_thread(command.thread_id)
    role = participant_role(thread, identity.user_id)
    if command.sender_role is not None and command.sender_role is not role:
        raise ForbiddenError("Sender role does not match the conversation.")

    result = await store.append_message(
        thread.id,
        identity.user_id,
        identity.display_name,
        role,
        command.text,
        kind=command.kind,
        attachment=command.attachment,
        client_key=command.client_key
    )
    return {
        "message": present_message(result.message, identity.user_id).to_wire(),
        "duplicate": result.duplicate,
    }


async def mark_read(payload, identity: Identity, db: AsyncSession):
    command = parse_command(MarkReadCommand, payload)
    store = MessageStore(db)
    thread = await store.get_thread(command.thread_id)
    role = participant_role(thread, identity.user_id)
    if command.reader_role is not None and command.reader_role is not role:
        raise ForbiddenError("Reader role does not match the conversation.")

    changed = await store.mark_read(thread.id, role)
    return {"changed": changed > 0, "changedCount": changed}


async def delete_messages(payload, identity: Identity, db: AsyncSession):
    command = parse_command(DeleteMessagesCommand, payload)
    store = MessageStore(db)
    thread = await store.get_thread(command.thread_id)
    participant_role(thread, identity.user_id)

    result = await store.delete_messages(thread.id, identity.user_id, command.message_ids, command.mode)
    return result.to_response().to_wire()


COMMANDS: Dict[str, CommandHandler] = {
    "ensureThread": ensure_thread,
    "ensureThreadOnPurchase": ensure_thread_on_purchase,
    "sendMessage": send_message,
    "markRead": mark_read,
    "deleteMessages": delete_messages,
}


@router.post("")
async def run_command(
    request: Request,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """Dispatch a chat command."""
    try:
        payload = await request.json()
    except ValueError:
        return failure("Invalid payload.", status.HTTP_400_BAD_REQUEST)
    if not isinstance(payload, dict):
        return failure("Invalid payload.", status.HTTP_400_BAD_REQUEST)

    action = payload.get("action")
    handler = COMMANDS.get(action) if isinstance(action, str) else None
    if handler is None:
        return failure("Unsupported action.", status.HTTP_400_BAD_REQUEST)

    try:
        result = await handler(payload, identity, db)
    except ChatError as e:
        if e.status_code >= 500:
            logger.error("Command %s failed: %s", action, e.message)
        return failure(e.message, e.status_code)
    except Exception:
        logger.exception("Command %s failed for user %s", action, identity.user_id)
        await db.rollback()
        return failure("Marketplace operation failed.", status.HTTP_500_INTERNAL_SERVER_ERROR)

    return {"ok": True, **result}
