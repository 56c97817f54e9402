"""
Client side view of one conversation.

Server messages are the source of truth. Messages the user just sent live
in an outbox until the server copy with the same ``client_key`` shows up;
failed sends stay there, visible, until retried or discarded.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Set, Union

from pydantic import ValidationError

from ..config import settings
from ..enums import DeleteMode, MessageKind, MessageStatus
from ..exceptions import ChatError, NotFoundError, TransportError
from ..schemas.command import DeletionResponse
from ..schemas.message import AttachmentPayload, MessageResponse
from ..services.attachment_codec import PreviewHandle, PreviewRegistry, attachment_kind
from ..services.deletion import can_delete_for_everyone
from ..services.delivery import advance
from .transport import ChatTransport


logger = logging.getLogger(__name__)

TIMEOUT_MESSAGE = "The message took too long to send. Try again."
SEND_FAILED_MESSAGE = "Could not send the message."


@dataclass
class PendingMessage:
    """A message sent from this client that the server has not confirmed."""
    local_id: str
    client_key: str
    sender_id: str
    text: str = ""
    attachment: Optional[AttachmentPayload] = None
    kind: MessageKind = MessageKind.TEXT
    status: MessageStatus = MessageStatus.SENDING
    error_message: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    preview: Optional[PreviewHandle] = None

    def to_payload(self, thread_id: int) -> dict:
        payload = {
            "threadId": thread_id,
            "text": self.text,
            "kind": self.kind.value,
            "clientKey": self.client_key,
        }
        if self.attachment is not None:
            payload["attachment"] = self.attachment.to_wire()
        return payload


class Outbox:
    """Pending messages keyed by local id, in send order."""

    def __init__(self):
        self._entries: Dict[str, PendingMessage] = {}

    def __len__(self):
        return len(self._entries)

    def __iter__(self):
        return iter(list(self._entries.values()))

    def add(self, pending: PendingMessage):
        self._entries[pending.local_id] = pending

    def get(self, local_id: str) -> Optional[PendingMessage]:
        return self._entries.get(local_id)

    def remove(self, local_id: str) -> Optional[PendingMessage]:
        return self._entries.pop(local_id, None)

    def reconcile(self, confirmed_keys: Set[str]) -> List[PendingMessage]:
        """Drop entries whose client_key the server already stores."""
        confirmed = [p for p in self._entries.values() if p.client_key in confirmed_keys]
        for pending in confirmed:
            del self._entries[pending.local_id]
        return confirmed


class ConversationSession:
    """Optimistic send, retry, read and delete for one thread."""

    def __init__(
        self,
        transport: ChatTransport,
        thread_id: int,
        user_id: str,
        previews: Optional[PreviewRegistry] = None,
        send_timeout: Optional[float] = None
    ):
        self.transport = transport
        self.thread_id = thread_id
        self.user_id = user_id
        self.previews = previews
        self.send_timeout = send_timeout or settings.SEND_TIMEOUT_SECONDS

        self.messages: List[MessageResponse] = []
        self.outbox = Outbox()
        self.hidden_ids: Set[int] = set()
        self.warning: Optional[str] = None

    # Server state

    async def refresh(self) -> List[MessageResponse]:
        """Reload the thread and settle pending entries the server confirmed."""
        body = await self.transport.get(f"/api/chat/threads/{self.thread_id}/messages")
        self.messages = [MessageResponse.model_validate(item) for item in body]

        keys = {m.client_key for m in self.messages if m.client_key}
        for pending in self.outbox.reconcile(keys):
            self._release(pending)
        return self.messages

    def _merge(self, message: MessageResponse):
        self.messages = [m for m in self.messages if m.id != message.id]
        self.messages.append(message)
        self.messages.sort(key=lambda m: (m.created_at, m.id))

    # Sending

    async def send(self, text: str = "", attachment: Optional[AttachmentPayload] = None) -> PendingMessage:
        """
        Show the message immediately, then submit it.

        The returned entry is ``failed`` (with ``error_message``) when the
        server rejected it or could not be reached in time; otherwise it has
        already been replaced by the server copy in ``messages``.
        """
        pending = PendingMessage(
            local_id=f"local-{uuid.uuid4()}",
            client_key=uuid.uuid4().hex,
            sender_id=self.user_id,
            text=(text or "").strip(),
            attachment=attachment,
            kind=attachment_kind(attachment.mime_type) if attachment else MessageKind.TEXT,
        )
        if attachment is not None and self.previews is not None:
            pending.preview = await self.previews.create(attachment)

        self.outbox.add(pending)
        await self._submit(pending)
        return pending

    async def retry(self, local_id: str) -> PendingMessage:
        """Re-submit a failed message with the same payload and client_key."""
        pending = self.outbox.get(local_id)
        if pending is None:
            raise NotFoundError("Message not found.")

        pending.status = advance(pending.status, MessageStatus.SENDING)
        pending.error_message = None
        await self._submit(pending)
        return pending

    def discard(self, local_id: str) -> bool:
        """Forget a failed message without sending it."""
        pending = self.outbox.get(local_id)
        if pending is None or pending.status is not MessageStatus.FAILED:
            return False
        self.outbox.remove(local_id)
        self._release(pending)
        return True

    async def _submit(self, pending: PendingMessage):
        try:
            body = await asyncio.wait_for(
                self.transport.post_command("sendMessage", pending.to_payload(self.thread_id)),
                timeout=self.send_timeout
            )
        except asyncio.TimeoutError:
            self._fail(pending, TIMEOUT_MESSAGE)
            return
        except TransportError as e:
            self._fail(pending, e.message)
            return
        except Exception:
            self._fail(pending, SEND_FAILED_MESSAGE)
            raise

        if not body.get("ok"):
            self._fail(pending, body.get("message") or SEND_FAILED_MESSAGE)
            return

        # the server may have stored it; refresh() settles the entry by client_key
        try:
            message = MessageResponse.model_validate(body["message"])
        except (KeyError, ValidationError):
            logger.exception("Unreadable sendMessage response in thread %s", self.thread_id)
            self._fail(pending, SEND_FAILED_MESSAGE)
            return

        pending.status = advance(pending.status, MessageStatus.SENT)
        self.outbox.remove(pending.local_id)
        self._release(pending)
        self._merge(message)

    def _fail(self, pending: PendingMessage, error: str):
        pending.status = advance(pending.status, MessageStatus.FAILED)
        pending.error_message = error
        logger.warning("Send %s in thread %s failed: %s", pending.local_id, self.thread_id, error)

    def _release(self, pending: PendingMessage):
        if self.previews is not None and pending.preview is not None:
            self.previews.revoke(pending.preview)
            pending.preview = None

    # Read state

    async def mark_read(self) -> bool:
        """Called while the thread is open. True when anything changed."""
        body = await self.transport.post_command("markRead", {"threadId": self.thread_id})
        if not body.get("ok"):
            logger.warning("markRead on thread %s rejected: %s", self.thread_id, body.get("message"))
            return False
        return bool(body.get("changed"))

    # Deletion

    def can_delete_for_everyone(self, message_id: int) -> bool:
        message = next((m for m in self.messages if m.id == message_id), None)
        return message is not None and can_delete_for_everyone(message, self.user_id)

    async def delete(self, message_ids: Iterable[int], mode: Union[DeleteMode, str]) -> DeletionResponse:
        """
        Delete messages and reload. Ids the server refused end up in
        ``not_allowed_ids`` and set ``warning``; the others proceed.
        """
        mode = DeleteMode(mode)
        body = await self.transport.post_command("deleteMessages", {
            "threadId": self.thread_id,
            "messageIds": list(message_ids),
            "mode": mode.value,
        })
        if not body.get("ok"):
            raise ChatError(body.get("message") or "Could not delete the messages.")

        result = DeletionResponse.model_validate(body)
        if mode is DeleteMode.ME:
            self.hidden_ids.update(result.deleted_ids)
        self.warning = result.warning

        await self.refresh()
        return result

    # Rendering

    def view(self) -> List[Union[MessageResponse, PendingMessage]]:
        """Confirmed messages followed by pending/failed ones."""
        confirmed = [m for m in self.messages if m.id not in self.hidden_ids]
        return confirmed + list(self.outbox)

    def close(self):
        for pending in self.outbox:
            self._release(pending)
