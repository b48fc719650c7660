"""Agregador de conversaciones del marketplace.

Arma la bandeja de conversaciones de un usuario (anuncio, contraparte, último
mensaje y no leídos), el hilo de una conversación con los nombres de los
remitentes, el envío de mensajes y el alta de conversaciones desde un anuncio.

Las consultas de enriquecimiento (anuncios, perfiles, mensajes de la bandeja)
son independientes entre sí; si alguna falla se registra y el registro afectado
queda con valores por defecto en lugar de abortar la operación completa.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Iterable, Sequence, TypeVar

from marketplace.core.logging import get_logger, log_event
from marketplace.models.conversation import (
    Conversation,
    EnrichedConversation,
    EnrichedMessage,
    Message,
)
from marketplace.repositories.messaging import MessagingRepository
from marketplace.services.supabase import StoreError

logger = get_logger("marketplace.messaging")

UNKNOWN_USER = "Unknown User"
UNKNOWN_SENDER = "Unknown"

T = TypeVar("T")

UnreadCounter = Callable[[Conversation, Sequence[Message], str], int]


class MessagingError(Exception):
    """Base de errores de dominio de mensajería."""


class ConversationNotFoundError(MessagingError):
    pass


class ListingNotFoundError(MessagingError):
    pass


class NotParticipantError(MessagingError):
    """El usuario no es comprador ni vendedor de la conversación."""


class SelfConversationError(MessagingError):
    """Un vendedor intentó abrir conversación sobre su propio anuncio."""


@dataclass(slots=True)
class Thread:
    """Hilo ensamblado de una conversación."""

    conversation: Conversation
    messages: list[EnrichedMessage] = field(default_factory=list)
    marked_read: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ConversationStart:
    conversation: Conversation
    created: bool


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def count_unread(conversation: Conversation, messages: Sequence[Message], viewer_id: str) -> int:
    """Mensajes de la contraparte posteriores al `updated_at` de la conversación.

    `updated_at` funciona aquí como cursor de lectura aunque en realidad marca
    la última actividad de cualquiera de los dos participantes; no es un cursor
    por usuario. Se conserva ese comportamiento y se aísla para poder
    sustituirlo (ver `list_conversations(unread_counter=...)`).
    """
    return sum(
        1
        for message in messages
        if message.sender_id != viewer_id and message.created_at > conversation.updated_at
    )


def unread_message_ids(messages: Iterable[Message], viewer_id: str) -> list[str]:
    """Ids de mensajes de la contraparte que siguen sin leer."""
    return [m.id for m in messages if m.sender_id != viewer_id and not m.is_read]


def _distinct(values: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(values))


async def _or_empty(lookup: Awaitable[list[T]], event: str, **extra: object) -> list[T]:
    try:
        return await lookup
    except StoreError as exc:
        logger.warning(event, extra={**extra, "error": str(exc), "status": exc.status_code})
        return []


async def list_conversations(
    repo: MessagingRepository,
    user_id: str,
    *,
    unread_counter: UnreadCounter = count_unread,
) -> list[EnrichedConversation]:
    """Bandeja del usuario, de la actividad más reciente a la más antigua.

    Solo el fallo de la consulta inicial de conversaciones se propaga.
    """
    conversations = await repo.list_conversations(user_id)
    if not conversations:
        return []

    listing_ids = _distinct(c.listing_id for c in conversations)
    counterpart_ids = _distinct(c.counterpart_of(user_id) for c in conversations)
    conversation_ids = [c.id for c in conversations]

    listings = await _or_empty(
        repo.get_listings_by_ids(listing_ids),
        "messaging.listings_lookup_failed",
        user_id=user_id,
    )
    profiles = await _or_empty(
        repo.get_profile_names_by_ids(counterpart_ids),
        "messaging.profiles_lookup_failed",
        user_id=user_id,
    )
    recent = await _or_empty(
        repo.get_messages_by_conversation_ids(conversation_ids),
        "messaging.messages_lookup_failed",
        user_id=user_id,
    )

    listings_by_id = {listing.id: listing for listing in listings}
    names_by_id = {profile.id: profile.full_name for profile in profiles}
    # Conserva el orden descendente de la consulta dentro de cada conversación.
    messages_by_conversation: dict[str, list[Message]] = defaultdict(list)
    for message in recent:
        messages_by_conversation[message.conversation_id].append(message)

    enriched: list[EnrichedConversation] = []
    for conversation in conversations:
        other_id = conversation.counterpart_of(user_id)
        listing = listings_by_id.get(conversation.listing_id)
        thread = messages_by_conversation.get(conversation.id, [])
        last = thread[0] if thread else None
        enriched.append(
            EnrichedConversation(
                **conversation.model_dump(),
                other_user_id=other_id,
                other_user_name=names_by_id.get(other_id) or UNKNOWN_USER,
                listing_title=listing.title if listing else None,
                listing_price=listing.price if listing else None,
                listing_images=list(listing.images) if listing else [],
                last_message=last.content if last else None,
                last_message_time=last.created_at if last else None,
                unread_count=unread_counter(conversation, thread, user_id),
            )
        )

    log_event(
        logger,
        "messaging.conversations_listed",
        user_id=user_id,
        conversations=len(enriched),
    )
    return enriched


async def _require_participant(
    repo: MessagingRepository, conversation_id: str, user_id: str
) -> Conversation:
    conversation = await repo.get_conversation(conversation_id)
    if conversation is None:
        raise ConversationNotFoundError(conversation_id)
    if not conversation.is_participant(user_id):
        raise NotParticipantError(conversation_id)
    return conversation


async def _assemble_thread(
    repo: MessagingRepository, conversation: Conversation, viewer_id: str
) -> Thread:
    messages = await repo.get_messages_by_conversation_id(conversation.id)

    senders = await _or_empty(
        repo.get_profile_names_by_ids(_distinct(m.sender_id for m in messages)),
        "messaging.senders_lookup_failed",
        conversation_id=conversation.id,
    )
    names_by_id = {profile.id: profile.full_name for profile in senders}
    # Los mensajes devueltos reflejan `is_read` tal como se leyó, sin voltearlo.
    enriched = [
        EnrichedMessage(
            **message.model_dump(),
            sender_name=names_by_id.get(message.sender_id) or UNKNOWN_SENDER,
        )
        for message in messages
    ]

    marked: list[str] = []
    pending = unread_message_ids(messages, viewer_id)
    if pending:
        try:
            await repo.update_messages_read_flag(pending)
        except StoreError as exc:
            logger.warning(
                "messaging.mark_read_failed",
                extra={
                    "conversation_id": conversation.id,
                    "pending": len(pending),
                    "error": str(exc),
                },
            )
        else:
            marked = pending

    return Thread(conversation=conversation, messages=enriched, marked_read=marked)


async def open_thread(repo: MessagingRepository, conversation_id: str, viewer_id: str) -> Thread:
    """Hilo en orden cronológico; marca como leídos los mensajes de la contraparte."""
    conversation = await _require_participant(repo, conversation_id, viewer_id)
    return await _assemble_thread(repo, conversation, viewer_id)


def _next_timestamp(previous: datetime, now: datetime) -> datetime:
    # Garantiza avance estricto aunque el reloj local vaya atrasado respecto a la BD.
    return max(now, previous + timedelta(microseconds=1))


async def send_message(
    repo: MessagingRepository,
    conversation_id: str | None,
    sender_id: str,
    text: str | None,
    *,
    clock: Callable[[], datetime] = _utcnow,
) -> Thread | None:
    """Publica un mensaje y devuelve el hilo actualizado.

    Texto vacío (tras ``strip``) o conversación sin seleccionar es un no-op:
    retorna ``None`` sin tocar el almacenamiento.
    """
    content = (text or "").strip()
    if not content or not conversation_id:
        return None

    conversation = await _require_participant(repo, conversation_id, sender_id)
    message = await repo.insert_message(conversation_id, sender_id, content)
    log_event(
        logger,
        "messaging.message_sent",
        conversation_id=conversation_id,
        message_id=message.id,
        sender_id=sender_id,
    )

    try:
        thread = await _assemble_thread(repo, conversation, sender_id)
    except StoreError as exc:
        # El mensaje ya quedó guardado; sin recarga se devuelve solo el nuevo.
        logger.warning(
            "messaging.thread_reload_failed",
            extra={"conversation_id": conversation_id, "error": str(exc)},
        )
        thread = Thread(
            conversation=conversation,
            messages=[EnrichedMessage(**message.model_dump(), sender_name=UNKNOWN_SENDER)],
        )

    stamp = _next_timestamp(conversation.updated_at, clock())
    try:
        await repo.update_conversation_timestamp(conversation_id, stamp)
    except StoreError as exc:
        logger.warning(
            "messaging.touch_conversation_failed",
            extra={"conversation_id": conversation_id, "error": str(exc)},
        )
    else:
        thread.conversation = conversation.model_copy(update={"updated_at": stamp})
    return thread


async def start_conversation(
    repo: MessagingRepository, listing_id: str, buyer_id: str
) -> ConversationStart:
    """Busca o crea la conversación (anuncio, comprador, dueño del anuncio)."""
    listing = await repo.get_listing(listing_id)
    if listing is None or not listing.user_id:
        raise ListingNotFoundError(listing_id)
    seller_id = listing.user_id
    if seller_id == buyer_id:
        raise SelfConversationError(listing_id)

    existing = await repo.find_conversation(listing_id, buyer_id, seller_id)
    if existing is not None:
        return ConversationStart(conversation=existing, created=False)

    try:
        created = await repo.insert_conversation(listing_id, buyer_id, seller_id)
    except StoreError as exc:
        if not exc.is_unique_violation:
            raise
        # Otra petición creó la misma terna entre la búsqueda y el insert.
        winner = await repo.find_conversation(listing_id, buyer_id, seller_id)
        if winner is None:
            raise
        log_event(
            logger,
            "messaging.conversation_create_race",
            listing_id=listing_id,
            conversation_id=winner.id,
        )
        return ConversationStart(conversation=winner, created=False)
    return ConversationStart(conversation=created, created=True)
