"""
Message delivery lifecycle.

    sending -> sent -> read
       |  ^
       v  |
      failed

A failed message only re-enters the pipe through an explicit retry
(failed -> sending). read is terminal.
"""

from typing import Dict, FrozenSet

from ..enums import MessageStatus
from ..exceptions import InvalidTransitionError


TRANSITIONS: Dict[MessageStatus, FrozenSet[MessageStatus]] = {
    MessageStatus.SENDING: frozenset({MessageStatus.SENT, MessageStatus.FAILED}),
    MessageStatus.SENT: frozenset({MessageStatus.READ}),
    MessageStatus.READ: frozenset(),
    MessageStatus.FAILED: frozenset({MessageStatus.SENDING}),
}


def can_advance(current, target) -> bool:
    return MessageStatus(target) in TRANSITIONS[MessageStatus(current)]


def advance(current, target) -> MessageStatus:
    """Validate a status change and return the new status."""
    if not can_advance(current, target):
        raise InvalidTransitionError(MessageStatus(current).value, MessageStatus(target).value)
    return MessageStatus(target)


def statuses_leading_to(target) -> FrozenSet[MessageStatus]:
    """Every status that may legally move to ``target``."""
    target = MessageStatus(target)
    return frozenset(status for status, targets in TRANSITIONS.items() if target in targets)


def is_unread(status) -> bool:
    """Counts towards a recipient's unread badge."""
    return MessageStatus(status) not in (MessageStatus.READ, MessageStatus.FAILED)
