from __future__ import annotations

import asyncio
import copy
import json

import pytest

from relay_service.application.exceptions import ValidationError
from relay_service.client.store import ConversationStore
from relay_service.domain.value_objects.enums import MessageDirection
from relay_service.domain.value_objects.message_status import MessageStatus
from tests.conftest import (
    COUNTERPART,
    FailingRepository,
    FakeSender,
    make_incoming,
    make_status,
)


@pytest.mark.asyncio
async def test_send_scenario_pending_sent_delivered_then_unread(store, repository):
    gate = asyncio.Event()
    sender = FakeSender(message_id="wamid.1", gate=gate)

    task = asyncio.create_task(store.send(COUNTERPART, "hi", sender))
    await asyncio.sleep(0)

    conv = store.conversation(COUNTERPART)
    assert len(conv.messages) == 1
    assert conv.messages[0].status is MessageStatus.PENDING
    assert conv.messages[0].message_id is None
    # the optimistic insert is already persisted
    assert repository.records["test-client"][COUNTERPART]["messages"][0]["status"] == "pending"

    gate.set()
    message = await task
    assert message.status is MessageStatus.SENT
    assert message.message_id == "wamid.1"

    assert store.apply_status(make_status(message_id="wamid.1", status="delivered")) is True
    assert len(conv.messages) == 1
    assert conv.messages[0].status is MessageStatus.DELIVERED

    store.apply_incoming(make_incoming(sender=COUNTERPART))
    assert conv.unread == 1

    store.activate(COUNTERPART)
    assert conv.unread == 0
    assert store.active == COUNTERPART


@pytest.mark.asyncio
async def test_failed_send_marks_failed_and_never_retries(store, failing_sender):
    message = await store.send(COUNTERPART, "hi", failing_sender)

    assert message.status is MessageStatus.FAILED
    assert message.message_id is None
    assert failing_sender.calls == [(COUNTERPART, "hi")]
    assert store.conversation(COUNTERPART).messages == [message]


@pytest.mark.asyncio
async def test_unexpected_sender_error_still_marks_failed(store):
    sender = FakeSender(error=RuntimeError("boom"))

    message = await store.send(COUNTERPART, "hi", sender)

    assert message.status is MessageStatus.FAILED


@pytest.mark.asyncio
async def test_send_strips_text_and_rejects_empty(store, sender):
    message = await store.send(COUNTERPART, "  hi there \n", sender)
    assert message.text == "hi there"

    with pytest.raises(ValidationError):
        await store.send(COUNTERPART, "   ", sender)
    assert len(store.conversation(COUNTERPART).messages) == 1


def test_status_update_is_idempotent(store):
    msg = store.begin_send(COUNTERPART, "hi")
    store.complete_send(msg, "wamid.1", ok=True)

    store.apply_status(make_status(status="delivered"))
    once = copy.deepcopy(store.snapshot())
    store.apply_status(make_status(status="delivered"))

    assert store.snapshot() == once


def test_unknown_status_update_leaves_store_unchanged(store, repository):
    msg = store.begin_send(COUNTERPART, "hi")
    store.complete_send(msg, "wamid.1", ok=True)
    store.apply_incoming(make_incoming())
    before = json.dumps(store.snapshot(), sort_keys=True)
    saves_before = repository.saves

    assert store.apply_status(make_status(message_id="wamid.unknown")) is False

    assert json.dumps(store.snapshot(), sort_keys=True) == before
    assert repository.saves == saves_before


def test_status_update_targets_sent_messages_only(store):
    store.apply_incoming(make_incoming(message_id="wamid.in.7"))

    assert store.apply_status(make_status(message_id="wamid.in.7", status="read")) is False
    assert store.conversation(COUNTERPART).messages[0].status is None


def test_read_before_delivered_is_applied_as_received(store):
    msg = store.begin_send(COUNTERPART, "hi")
    store.complete_send(msg, "wamid.1", ok=True)

    store.apply_status(make_status(status="read"))
    store.apply_status(make_status(status="delivered"))

    assert msg.status is MessageStatus.DELIVERED


def test_status_update_finds_message_in_any_conversation(store):
    first = store.begin_send("111", "a")
    store.complete_send(first, "wamid.a", ok=True)
    second = store.begin_send("222", "b")
    store.complete_send(second, "wamid.b", ok=True)

    store.apply_status(make_status(message_id="wamid.a", status="read"))

    assert first.status is MessageStatus.READ
    assert second.status is MessageStatus.SENT


def test_incoming_creates_conversation_and_updates_name(store):
    store.apply_incoming(make_incoming(sender="999", name="999"))
    conv = store.conversation("999")
    assert conv.name == "999"

    store.apply_incoming(make_incoming(sender="999", name="Bob", message_id="wamid.in.2"))
    assert conv.name == "Bob"
    assert [m.direction for m in conv.messages] == [MessageDirection.RECEIVED] * 2
    assert conv.unread == 2


def test_unread_counts_only_while_inactive(store):
    store.activate(COUNTERPART)
    store.apply_incoming(make_incoming(message_id="m1"))
    assert store.conversation(COUNTERPART).unread == 0

    store.activate("someone-else")
    store.apply_incoming(make_incoming(message_id="m2"))
    store.apply_incoming(make_incoming(message_id="m3"))
    assert store.conversation(COUNTERPART).unread == 2

    store.activate(COUNTERPART)
    assert store.conversation(COUNTERPART).unread == 0


def test_deactivate_resumes_unread_counting(store):
    store.activate(COUNTERPART)
    store.apply_incoming(make_incoming(message_id="m1"))

    store.deactivate()
    store.apply_incoming(make_incoming(message_id="m2"))

    assert store.active is None
    assert store.conversation(COUNTERPART).unread == 1


def test_messages_keep_insertion_order_not_timestamp_order(store):
    store.apply_incoming(make_incoming(message_id="late", timestamp=2_000))
    store.apply_incoming(make_incoming(message_id="early", timestamp=1_000))

    ids = [m.message_id for m in store.conversation(COUNTERPART).messages]
    assert ids == ["late", "early"]


def test_one_conversation_per_counterpart(store):
    store.begin_send(COUNTERPART, "one")
    store.apply_incoming(make_incoming())
    store.begin_send(COUNTERPART, "two")

    assert list(store.conversations) == [COUNTERPART]
    assert len(store.conversation(COUNTERPART).messages) == 3


def test_state_survives_reload(repository):
    first = ConversationStore.open("me", repository)
    msg = first.begin_send(COUNTERPART, "hi")
    first.complete_send(msg, "wamid.1", ok=True)
    first.apply_incoming(make_incoming())

    second = ConversationStore.open("me", repository)

    assert second.snapshot() == first.snapshot()
    # the id index is rebuilt on load
    assert second.apply_status(make_status(message_id="wamid.1", status="read")) is True


def test_unreadable_record_loads_empty():
    repo = FailingRepository(records={"me": ["not", "a", "mapping"]})

    store = ConversationStore.open("me", repo)

    assert dict(store.conversations) == {}


def test_load_failure_loads_empty():
    repo = FailingRepository(fail_load=True)

    store = ConversationStore.open("me", repo)

    assert dict(store.conversations) == {}


class ExplodingRepository(FailingRepository):
    def load(self, identity):
        raise RuntimeError("driver crashed")


def test_unexpected_load_error_starts_empty():
    store = ConversationStore.open("me", ExplodingRepository())

    assert dict(store.conversations) == {}


def test_save_failure_keeps_memory_state():
    repo = FailingRepository(fail_save=True)
    store = ConversationStore.open("me", repo)

    store.apply_incoming(make_incoming())

    assert store.save() is False
    assert len(store.conversation(COUNTERPART).messages) == 1
    assert repo.records == {}


def test_duplicate_bind_keeps_first_message(store):
    first = store.begin_send(COUNTERPART, "a")
    store.complete_send(first, "wamid.dup", ok=True)
    second = store.begin_send(COUNTERPART, "b")
    store.complete_send(second, "wamid.dup", ok=True)

    assert store.find_message("wamid.dup") is first
    assert second.message_id is None


def test_conversations_by_recency(store):
    store.apply_incoming(make_incoming(sender="old", message_id="a", timestamp=100))
    store.apply_incoming(make_incoming(sender="new", message_id="b", timestamp=300))
    store.apply_incoming(make_incoming(sender="mid", message_id="c", timestamp=200))

    assert [c.counterpart_id for c in store.conversations_by_recency()] == ["new", "mid", "old"]
