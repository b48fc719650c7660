"""Fixtures compartidas para las pruebas."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Iterable

import pytest
from httpx import ASGITransport, AsyncClient

from marketplace.main import app
from marketplace.models.conversation import Conversation, ListingSummary, Message, ProfileName
from marketplace.services.supabase import StoreError

T0 = datetime(2024, 9, 1, 12, 0, tzinfo=timezone.utc)


class FakeMessagingRepository:
    """Repositorio en memoria que imita `MessagingRepository` y registra las llamadas."""

    def __init__(self) -> None:
        self.conversations: dict[str, Conversation] = {}
        self.messages: dict[str, Message] = {}
        self.listings: dict[str, ListingSummary] = {}
        self.profiles: dict[str, ProfileName] = {}
        self.calls: list[tuple[str, Any]] = []
        self.failing: set[str] = set()
        self.enforce_unique = False
        self.hide_next_find = False
        self._seq = 0

    # -- helpers de fixtures -------------------------------------------------
    def add_conversation(
        self,
        conv_id: str,
        *,
        listing_id: str,
        buyer_id: str,
        seller_id: str,
        updated_at: datetime = T0,
    ) -> Conversation:
        conversation = Conversation(
            id=conv_id,
            listing_id=listing_id,
            buyer_id=buyer_id,
            seller_id=seller_id,
            created_at=updated_at - timedelta(days=1),
            updated_at=updated_at,
        )
        self.conversations[conv_id] = conversation
        return conversation

    def add_message(
        self,
        msg_id: str,
        *,
        conversation_id: str,
        sender_id: str,
        content: str = "hola",
        created_at: datetime = T0,
        is_read: bool = False,
    ) -> Message:
        message = Message(
            id=msg_id,
            conversation_id=conversation_id,
            sender_id=sender_id,
            content=content,
            created_at=created_at,
            is_read=is_read,
        )
        self.messages[msg_id] = message
        return message

    def add_listing(self, listing_id: str, *, owner: str, title: str = "Desk", price: float = 40.0):
        self.listings[listing_id] = ListingSummary(
            id=listing_id, title=title, price=price, images=[f"{listing_id}.jpg"], user_id=owner
        )

    def add_profile(self, user_id: str, full_name: str) -> None:
        self.profiles[user_id] = ProfileName(id=user_id, full_name=full_name)

    def called(self, name: str) -> list[Any]:
        return [args for op, args in self.calls if op == name]

    def _record(self, name: str, args: Any) -> None:
        self.calls.append((name, args))
        if name in self.failing:
            raise StoreError(f"{name} failed", status_code=500)

    # -- operaciones ----------------------------------------------------------
    async def list_conversations(self, user_id: str) -> list[Conversation]:
        self._record("list_conversations", user_id)
        rows = [c for c in self.conversations.values() if c.is_participant(user_id)]
        return sorted(rows, key=lambda c: c.updated_at, reverse=True)

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        self._record("get_conversation", conversation_id)
        return self.conversations.get(conversation_id)

    async def get_listings_by_ids(self, listing_ids: Iterable[str]) -> list[ListingSummary]:
        ids = list(listing_ids)
        self._record("get_listings_by_ids", ids)
        return [self.listings[i] for i in ids if i in self.listings]

    async def get_listing(self, listing_id: str) -> ListingSummary | None:
        self._record("get_listing", listing_id)
        return self.listings.get(listing_id)

    async def get_profile_names_by_ids(self, user_ids: Iterable[str]) -> list[ProfileName]:
        ids = list(user_ids)
        self._record("get_profile_names_by_ids", ids)
        return [self.profiles[i] for i in ids if i in self.profiles]

    async def get_messages_by_conversation_ids(
        self, conversation_ids: Iterable[str]
    ) -> list[Message]:
        ids = set(conversation_ids)
        self._record("get_messages_by_conversation_ids", ids)
        rows = [m for m in self.messages.values() if m.conversation_id in ids]
        return sorted(rows, key=lambda m: m.created_at, reverse=True)

    async def get_messages_by_conversation_id(self, conversation_id: str) -> list[Message]:
        self._record("get_messages_by_conversation_id", conversation_id)
        rows = [m for m in self.messages.values() if m.conversation_id == conversation_id]
        return sorted(rows, key=lambda m: m.created_at)

    async def insert_message(self, conversation_id: str, sender_id: str, content: str) -> Message:
        self._record("insert_message", (conversation_id, sender_id, content))
        self._seq += 1
        latest = max((m.created_at for m in self.messages.values()), default=T0)
        return self.add_message(
            f"new-{self._seq}",
            conversation_id=conversation_id,
            sender_id=sender_id,
            content=content,
            created_at=latest + timedelta(seconds=1),
        )

    async def update_messages_read_flag(self, message_ids: Iterable[str]) -> None:
        ids = list(message_ids)
        self._record("update_messages_read_flag", ids)
        for message_id in ids:
            message = self.messages[message_id]
            self.messages[message_id] = message.model_copy(update={"is_read": True})

    async def update_conversation_timestamp(
        self, conversation_id: str, updated_at: datetime
    ) -> None:
        self._record("update_conversation_timestamp", (conversation_id, updated_at))
        conversation = self.conversations[conversation_id]
        self.conversations[conversation_id] = conversation.model_copy(
            update={"updated_at": updated_at}
        )

    async def find_conversation(
        self, listing_id: str, buyer_id: str, seller_id: str
    ) -> Conversation | None:
        self._record("find_conversation", (listing_id, buyer_id, seller_id))
        if self.hide_next_find:
            self.hide_next_find = False
            return None
        for conversation in self.conversations.values():
            if (conversation.listing_id, conversation.buyer_id, conversation.seller_id) == (
                listing_id,
                buyer_id,
                seller_id,
            ):
                return conversation
        return None

    async def insert_conversation(
        self, listing_id: str, buyer_id: str, seller_id: str
    ) -> Conversation:
        self._record("insert_conversation", (listing_id, buyer_id, seller_id))
        if self.enforce_unique and any(
            (c.listing_id, c.buyer_id, c.seller_id) == (listing_id, buyer_id, seller_id)
            for c in self.conversations.values()
        ):
            raise StoreError("duplicate key", status_code=409, code="23505")
        self._seq += 1
        return self.add_conversation(
            f"conv-{self._seq}", listing_id=listing_id, buyer_id=buyer_id, seller_id=seller_id
        )


@pytest.fixture(name="fake_repo")
def fixture_fake_repo() -> FakeMessagingRepository:
    return FakeMessagingRepository()


@pytest.fixture(name="t0")
def fixture_t0() -> datetime:
    return T0


@pytest.fixture(name="async_client")
async def fixture_async_client() -> AsyncClient:
    """Retorna un cliente asíncrono contra la app principal utilizando ASGITransport."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
