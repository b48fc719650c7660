"""Registros de mensajería tal como los devuelve Supabase y sus versiones enriquecidas."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator


def ensure_utc(value: datetime) -> datetime:
    """Normaliza a UTC; los timestamps sin zona se asumen UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class _Record(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)


class Conversation(_Record):
    """Hilo comprador–vendedor sobre un anuncio."""

    id: str
    listing_id: str
    buyer_id: str
    seller_id: str
    created_at: datetime
    updated_at: datetime

    @field_validator("created_at", "updated_at")
    @classmethod
    def normalise_timestamps(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    def is_participant(self, user_id: str) -> bool:
        return user_id in (self.buyer_id, self.seller_id)

    def counterpart_of(self, user_id: str) -> str:
        """Retorna el otro participante respecto a `user_id`."""
        return self.seller_id if self.buyer_id == user_id else self.buyer_id


class Message(_Record):
    id: str
    conversation_id: str
    sender_id: str
    content: str
    created_at: datetime
    is_read: bool = False

    @field_validator("created_at")
    @classmethod
    def normalise_timestamps(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @field_validator("is_read", mode="before")
    @classmethod
    def null_is_unread(cls, value: object) -> object:
        return False if value is None else value


class ListingSummary(_Record):
    id: str
    title: str | None = None
    price: float | None = None
    images: list[str] = Field(default_factory=list)
    user_id: str | None = None

    @field_validator("images", mode="before")
    @classmethod
    def null_images(cls, value: object) -> object:
        return [] if value is None else value


class ProfileName(_Record):
    id: str
    full_name: str | None = None


class EnrichedConversation(Conversation):
    """Conversación con los datos de presentación que arma el agregador."""

    other_user_id: str
    other_user_name: str
    listing_title: str | None = None
    listing_price: float | None = None
    listing_images: list[str] = Field(default_factory=list)
    last_message: str | None = None
    last_message_time: datetime | None = None
    unread_count: int = 0


class EnrichedMessage(Message):
    sender_name: str
