"""Shared fixtures: a small seeded marketplace and a fault-injecting store."""

import asyncio
from collections import Counter, defaultdict
from datetime import datetime, timezone
from typing import Dict, List

import pytest

from artisan_market.config import Settings
from artisan_market.repositories.memory import InMemoryDataAccess
from artisan_market.services.conversations import ConversationStore
from artisan_market.services.identity import IdentityResolver
from artisan_market.services.messages import MessageStore


def ts(day: int, hour: int = 10, minute: int = 0) -> datetime:
    return datetime(2024, 1, day, hour, minute, tzinfo=timezone.utc)


def marketplace_tables() -> dict:
    return {
        "customer_profiles": [
            {"id": "c1", "first_name": "Ada", "last_name": "Lovelace", "photo_url": "https://img/c1.png"},
            {"id": "c2", "first_name": "Grace", "last_name": "Hopper"},
            {"id": "c3", "first_name": "Alan", "last_name": "Turing"},
        ],
        "seller_profiles": [
            {"id": "s1", "business_name": "Clay & Kiln", "first_name": "Mia", "last_name": "Stone",
             "status": "approved", "profile_completed": False},
            {"id": "s2", "business_name": "Loom Works", "status": "pending", "profile_completed": True},
            {"id": "s3", "business_name": "Oak Hands", "status": "approved", "profile_completed": True},
        ],
        "products": [
            {"id": "p1", "seller_id": "s1", "image_url": "https://img/p1-old.png"},
            {"id": "p2", "seller_id": "s2", "image_url": None},
        ],
        "conversations": [
            {"id": "conv-1", "customer_id": "c1", "seller_id": "s1", "product_id": "p1",
             "subject": "Product Inquiry", "status": "active", "created_at": ts(1)},
            {"id": "conv-2", "customer_id": "c1", "seller_id": "s2", "product_id": None,
             "subject": "Custom rug", "status": "active", "created_at": ts(2)},
            {"id": "conv-3", "customer_id": "c2", "seller_id": "s1", "product_id": None,
             "subject": None, "status": "active", "created_at": ts(3)},
            # Same pair as conv-1, created at conv-1's last message time
            {"id": "conv-4", "customer_id": "c1", "seller_id": "s1", "product_id": None,
             "subject": "Another question", "status": "active", "created_at": ts(1, 10, 10)},
        ],
        "messages": [
            {"id": "m1", "conversation_id": "conv-1", "sender_id": "c1", "sender_type": "customer",
             "content": "Is this vase still available?", "is_read": True, "created_at": ts(1, 10, 5)},
            {"id": "m3", "conversation_id": "conv-1", "sender_id": "s1", "sender_type": "seller",
             "content": "Yes it is.", "is_read": False, "created_at": ts(1, 10, 10)},
            {"id": "m2", "conversation_id": "conv-1", "sender_id": "s1", "sender_type": "seller",
             "content": "It ships tomorrow.", "is_read": False, "created_at": ts(1, 10, 10)},
            {"id": "m5", "conversation_id": "conv-2", "sender_id": "c1", "sender_type": "customer",
             "content": "Do you take custom orders?", "is_read": False, "created_at": ts(5)},
            {"id": "m6", "conversation_id": "conv-2", "sender_id": "s2", "sender_type": "seller",
             "message_text": "Certainly!", "is_read": False, "created_at": ts(6)},
        ],
        "orders": [
            {"id": "o1", "status": "delivered"},
            {"id": "o2", "status": "pending"},
            {"id": "o3", "status": "delivered"},
            {"id": "o4", "status": "cancelled"},
        ],
        "order_items": [
            {"order_id": "o1", "product_id": "p1", "quantity": 3},
            {"order_id": "o2", "product_id": "p1", "quantity": 5},
            {"order_id": "o3", "product_id": "p2", "quantity": 2},
            {"order_id": "o4", "product_id": "p2", "quantity": 7},
            {"order_id": "o3", "product_id": "p1", "quantity": None},
        ],
    }


class FlakyDataAccess(InMemoryDataAccess):
    """In-memory store that raises scripted failures per table."""

    def __init__(self, tables=None):
        super().__init__(tables)
        self.scripted: Dict[str, List[BaseException]] = defaultdict(list)
        self.always: Dict[str, BaseException] = {}
        self.delays: Dict[str, float] = {}
        self.calls: Counter = Counter()

    async def _before(self, table: str) -> None:
        self.calls[table] += 1
        if table in self.delays:
            await asyncio.sleep(self.delays[table])
        if table in self.always:
            raise self.always[table]
        if self.scripted[table]:
            raise self.scripted[table].pop(0)

    async def query(self, table, filters=None, columns=None, order_by=None, limit=None):
        await self._before(table)
        return await super().query(table, filters=filters, columns=columns, order_by=order_by, limit=limit)

    async def update(self, table, filters, patch):
        await self._before(table)
        return await super().update(table, filters, patch)


@pytest.fixture
def settings() -> Settings:
    """Settings with short timeouts and no retry backoff."""
    settings = Settings()
    settings.data_access_timeout = 1.0
    settings.data_access_retries = 3
    settings.data_access_retry_max_wait = 0
    settings.active_seller_policy = "approved"
    return settings


@pytest.fixture
def data_access() -> InMemoryDataAccess:
    return InMemoryDataAccess(marketplace_tables())


@pytest.fixture
def flaky_data_access() -> FlakyDataAccess:
    return FlakyDataAccess(marketplace_tables())


@pytest.fixture
def identities(data_access) -> IdentityResolver:
    return IdentityResolver(data_access)


@pytest.fixture
def conversations(data_access, identities) -> ConversationStore:
    return ConversationStore(data_access, identities)


@pytest.fixture
def messages(data_access, conversations, identities) -> MessageStore:
    return MessageStore(data_access, conversations, identities)
