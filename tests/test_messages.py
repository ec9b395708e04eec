"""Test suite for message threads."""

from datetime import datetime, timezone

import pytest

from artisan_market.domain.errors import AccessDenied, NotFound
from artisan_market.domain.models import UNKNOWN_DISPLAY_NAME, SenderRole
from artisan_market.repositories.memory import InMemoryDataAccess
from artisan_market.services.conversations import ConversationStore
from artisan_market.services.identity import IdentityResolver
from artisan_market.services.messages import MessageStore


def _store(tables: dict) -> MessageStore:
    data_access = InMemoryDataAccess(tables)
    identities = IdentityResolver(data_access)
    return MessageStore(data_access, ConversationStore(data_access, identities), identities)


def _at(minute: int) -> datetime:
    return datetime(2024, 3, 1, 12, minute, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_thread_order_with_timestamp_ties(messages):
    """Ascending by created_at, ties broken by id."""
    thread = await messages.list_messages("conv-1", "c1", SenderRole.CUSTOMER)
    assert [m.message.id for m in thread] == ["m1", "m2", "m3"]

    stamps = [m.message.created_at for m in thread]
    assert stamps == sorted(stamps)


@pytest.mark.asyncio
async def test_senders_resolved_by_role(messages):
    thread = await messages.list_messages("conv-1", "s1", SenderRole.SELLER)
    names = [(m.message.sender_type, m.sender.display_name) for m in thread]
    assert names == [
        (SenderRole.CUSTOMER, "Ada Lovelace"),
        (SenderRole.SELLER, "Clay & Kiln"),
        (SenderRole.SELLER, "Clay & Kiln"),
    ]
    assert all(m.sender_resolved for m in thread)


@pytest.mark.asyncio
async def test_legacy_message_text_column(messages):
    thread = await messages.list_messages("conv-2", "c1", SenderRole.CUSTOMER)
    assert thread[-1].message.content == "Certainly!"


@pytest.mark.asyncio
async def test_empty_thread(messages):
    assert await messages.list_messages("conv-4", "c1", SenderRole.CUSTOMER) == []


@pytest.mark.asyncio
async def test_unknown_conversation_is_not_found(messages):
    with pytest.raises(NotFound):
        await messages.list_messages("conv-missing", "c1", SenderRole.CUSTOMER)


@pytest.mark.asyncio
async def test_non_party_is_denied(messages):
    with pytest.raises(AccessDenied):
        await messages.list_messages("conv-1", "c2", SenderRole.CUSTOMER)
    with pytest.raises(AccessDenied):
        await messages.list_messages("conv-1", "s3", SenderRole.SELLER)


@pytest.mark.asyncio
async def test_same_id_in_both_profile_tables():
    """The stored role tag decides which profile a sender id refers to."""
    store = _store({
        "customer_profiles": [{"id": "u1", "first_name": "Sam", "last_name": "Reed"}],
        "seller_profiles": [{"id": "u1", "business_name": "Reed Baskets"}],
        "conversations": [
            {"id": "conv-x", "customer_id": "u1", "seller_id": "u1", "created_at": _at(0)},
        ],
        "messages": [
            {"id": "a", "conversation_id": "conv-x", "sender_id": "u1", "sender_type": "customer",
             "content": "hello", "created_at": _at(1)},
            {"id": "b", "conversation_id": "conv-x", "sender_id": "u1", "sender_type": "seller",
             "content": "hi", "created_at": _at(2)},
        ],
    })
    thread = await store.list_messages("conv-x", "u1", SenderRole.CUSTOMER)
    assert [m.sender.display_name for m in thread] == ["Sam Reed", "Reed Baskets"]


@pytest.mark.asyncio
async def test_missing_sender_profile_keeps_message():
    store = _store({
        "customer_profiles": [],
        "seller_profiles": [{"id": "s1", "business_name": "Clay & Kiln"}],
        "conversations": [
            {"id": "conv-y", "customer_id": "gone", "seller_id": "s1", "created_at": _at(0)},
        ],
        "messages": [
            {"id": "a", "conversation_id": "conv-y", "sender_id": "gone", "sender_type": "customer",
             "content": "still here", "created_at": _at(1)},
        ],
    })
    thread = await store.list_messages("conv-y", "s1", SenderRole.SELLER)
    assert len(thread) == 1
    assert thread[0].message.content == "still here"
    assert thread[0].sender.display_name == UNKNOWN_DISPLAY_NAME
    assert thread[0].sender_resolved is False


@pytest.mark.asyncio
async def test_malformed_message_rows_are_skipped():
    store = _store({
        "customer_profiles": [{"id": "c1", "first_name": "Ada", "last_name": "Lovelace"}],
        "seller_profiles": [{"id": "s1", "business_name": "Clay & Kiln"}],
        "conversations": [
            {"id": "conv-z", "customer_id": "c1", "seller_id": "s1", "created_at": _at(0)},
        ],
        "messages": [
            {"id": "a", "conversation_id": "conv-z", "sender_id": "c1", "sender_type": "customer",
             "content": "hello", "created_at": _at(1)},
            {"id": "b", "conversation_id": "conv-z", "sender_id": "x", "sender_type": "admin",
             "content": "bad role", "created_at": _at(2)},
            {"id": "c", "conversation_id": "conv-z", "sender_id": "s1",
             "content": "no role", "created_at": _at(3)},
            {"id": "d", "conversation_id": "conv-z", "sender_id": "s1", "sender_type": "seller",
             "content": "hi", "created_at": _at(4)},
        ],
    })
    thread = await store.list_messages("conv-z", "c1", SenderRole.CUSTOMER)
    assert [m.message.id for m in thread] == ["a", "d"]
    assert thread[1].sender.display_name == "Clay & Kiln"


@pytest.mark.asyncio
async def test_mark_as_read_only_touches_other_party(messages, data_access):
    changed = await messages.mark_as_read("conv-2", "c1", SenderRole.CUSTOMER)
    assert changed == 1

    rows = await data_access.query("messages", filters={"conversation_id": "conv-2"})
    read = {row["id"]: row["is_read"] for row in rows}
    assert read == {"m5": False, "m6": True}


@pytest.mark.asyncio
async def test_mark_as_read_clears_unread_count(messages, conversations):
    await messages.mark_as_read("conv-1", "c1", SenderRole.CUSTOMER)
    summaries = await conversations.list_conversations("c1", SenderRole.CUSTOMER)
    by_id = {s.conversation.id: s for s in summaries}
    assert by_id["conv-1"].unread_count == 0


@pytest.mark.asyncio
async def test_mark_as_read_requires_participant(messages):
    with pytest.raises(AccessDenied):
        await messages.mark_as_read("conv-1", "c2", SenderRole.CUSTOMER)
    with pytest.raises(NotFound):
        await messages.mark_as_read("conv-missing", "c1", SenderRole.CUSTOMER)
