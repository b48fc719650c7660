"""Acceso a conversaciones, mensajes, anuncios y perfiles vía Supabase REST."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable

from marketplace.core.logging import get_logger
from marketplace.models.conversation import (
    Conversation,
    ListingSummary,
    Message,
    ProfileName,
    ensure_utc,
)
from marketplace.services.supabase import StoreError, SupabaseClient

logger = get_logger(__name__)

CONVERSATION_FIELDS = "id,listing_id,buyer_id,seller_id,created_at,updated_at"
MESSAGE_FIELDS = "id,conversation_id,sender_id,content,created_at,is_read"


def quote_value(value: str) -> str:
    """Entrecomilla un valor para filtros PostgREST (``,``, ``)`` y ``.`` quedan literales)."""
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def in_filter(values: Iterable[str]) -> str:
    """Construye un filtro PostgREST ``in.(...)`` con valores entrecomillados."""
    return "in.({})".format(",".join(quote_value(value) for value in values))


def _unique(values: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(value for value in values if value))


class MessagingRepository:
    """Operaciones de almacenamiento que consume el agregador de conversaciones.

    Cada instancia está ligada al JWT del usuario que hace la petición, de modo
    que Supabase aplica las políticas RLS de ese usuario.
    """

    def __init__(self, client: SupabaseClient, *, token: str | None) -> None:
        self._client = client
        self._token = token

    async def list_conversations(self, user_id: str) -> list[Conversation]:
        quoted = quote_value(user_id)
        params = {
            "select": CONVERSATION_FIELDS,
            "or": f"(buyer_id.eq.{quoted},seller_id.eq.{quoted})",
            "order": "updated_at.desc",
        }
        rows = await self._client.select("conversations", token=self._token, params=params)
        return [Conversation.model_validate(row) for row in rows]

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        params = {"select": CONVERSATION_FIELDS, "id": f"eq.{conversation_id}", "limit": "1"}
        rows = await self._client.select("conversations", token=self._token, params=params)
        return Conversation.model_validate(rows[0]) if rows else None

    async def get_listings_by_ids(self, listing_ids: Iterable[str]) -> list[ListingSummary]:
        ids = _unique(listing_ids)
        if not ids:
            return []
        params = {"select": "id,title,price,images", "id": in_filter(ids)}
        rows = await self._client.select("listings", token=self._token, params=params)
        return [ListingSummary.model_validate(row) for row in rows]

    async def get_listing(self, listing_id: str) -> ListingSummary | None:
        params = {"select": "id,title,price,images,user_id", "id": f"eq.{listing_id}", "limit": "1"}
        rows = await self._client.select("listings", token=self._token, params=params)
        return ListingSummary.model_validate(rows[0]) if rows else None

    async def get_profile_names_by_ids(self, user_ids: Iterable[str]) -> list[ProfileName]:
        ids = _unique(user_ids)
        if not ids:
            return []
        params = {"select": "id,full_name", "id": in_filter(ids)}
        rows = await self._client.select("profiles", token=self._token, params=params)
        return [ProfileName.model_validate(row) for row in rows]

    async def get_messages_by_conversation_ids(
        self, conversation_ids: Iterable[str]
    ) -> list[Message]:
        """Mensajes de varias conversaciones, del más reciente al más antiguo."""
        ids = _unique(conversation_ids)
        if not ids:
            return []
        params = {
            "select": MESSAGE_FIELDS,
            "conversation_id": in_filter(ids),
            "order": "created_at.desc",
        }
        rows = await self._client.select("messages", token=self._token, params=params)
        return [Message.model_validate(row) for row in rows]

    async def get_messages_by_conversation_id(self, conversation_id: str) -> list[Message]:
        """Hilo completo en orden cronológico."""
        params = {
            "select": MESSAGE_FIELDS,
            "conversation_id": f"eq.{conversation_id}",
            "order": "created_at.asc",
        }
        rows = await self._client.select("messages", token=self._token, params=params)
        return [Message.model_validate(row) for row in rows]

    async def insert_message(self, conversation_id: str, sender_id: str, content: str) -> Message:
        payload = {
            "conversation_id": conversation_id,
            "sender_id": sender_id,
            "content": content,
            "is_read": False,
        }
        response = await self._client.request(
            "POST",
            "/rest/v1/messages",
            token=self._token,
            params={"select": MESSAGE_FIELDS},
            json=[payload],
            prefer="return=representation",
        )
        rows = self._client.json_list(response)
        if not rows:
            raise StoreError("Supabase did not return the inserted message")
        return Message.model_validate(rows[0])

    async def update_messages_read_flag(self, message_ids: Iterable[str]) -> None:
        ids = _unique(message_ids)
        if not ids:
            return
        await self._client.request(
            "PATCH",
            "/rest/v1/messages",
            token=self._token,
            params={"id": in_filter(ids)},
            json={"is_read": True},
            prefer="return=minimal",
        )

    async def update_conversation_timestamp(
        self, conversation_id: str, updated_at: datetime
    ) -> None:
        await self._client.request(
            "PATCH",
            "/rest/v1/conversations",
            token=self._token,
            params={"id": f"eq.{conversation_id}"},
            json={"updated_at": ensure_utc(updated_at).isoformat()},
            prefer="return=minimal",
        )

    async def find_conversation(
        self, listing_id: str, buyer_id: str, seller_id: str
    ) -> Conversation | None:
        params = {
            "select": CONVERSATION_FIELDS,
            "listing_id": f"eq.{listing_id}",
            "buyer_id": f"eq.{buyer_id}",
            "seller_id": f"eq.{seller_id}",
            "order": "created_at.asc",
            "limit": "1",
        }
        rows = await self._client.select("conversations", token=self._token, params=params)
        return Conversation.model_validate(rows[0]) if rows else None

    async def insert_conversation(
        self, listing_id: str, buyer_id: str, seller_id: str
    ) -> Conversation:
        response = await self._client.request(
            "POST",
            "/rest/v1/conversations",
            token=self._token,
            params={"select": CONVERSATION_FIELDS},
            json=[{"listing_id": listing_id, "buyer_id": buyer_id, "seller_id": seller_id}],
            prefer="return=representation",
        )
        rows = self._client.json_list(response)
        if not rows:
            raise StoreError("Supabase did not return the created conversation")
        logger.info(
            "messaging.conversation_created",
            extra={"conversation_id": rows[0].get("id"), "listing_id": listing_id},
        )
        return Conversation.model_validate(rows[0])
