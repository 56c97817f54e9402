import pytest

from terra_chat.enums import MessageStatus
from terra_chat.exceptions import InvalidTransitionError
from terra_chat.services.delivery import advance, can_advance, is_unread, statuses_leading_to


@pytest.mark.parametrize("current,target", [
    ("sending", "sent"),
    ("sending", "failed"),
    ("sent", "read"),
    ("failed", "sending"),
])
def test_allowed_transitions(current, target):
    assert can_advance(current, target)
    assert advance(current, target) is MessageStatus(target)


@pytest.mark.parametrize("current,target", [
    ("read", "sent"),
    ("read", "failed"),
    ("sent", "failed"),
    ("sent", "sending"),
    ("failed", "sent"),
    ("sending", "read"),
])
def test_rejected_transitions(current, target):
    assert not can_advance(current, target)
    with pytest.raises(InvalidTransitionError) as exc:
        advance(current, target)
    assert exc.value.current == current
    assert exc.value.target == target


def test_read_is_terminal():
    assert not any(can_advance(MessageStatus.READ, target) for target in MessageStatus)


def test_only_sent_messages_can_become_read():
    assert statuses_leading_to(MessageStatus.READ) == {MessageStatus.SENT}


def test_unread_excludes_read_and_failed():
    assert is_unread("sent")
    assert is_unread("sending")
    assert not is_unread("read")
    assert not is_unread("failed")
