"""Esquemas HTTP de la mensajería."""

from __future__ import annotations

from pydantic import BaseModel, Field

from marketplace.models.conversation import Conversation, EnrichedConversation, EnrichedMessage


class ConversationListResponse(BaseModel):
    """Respuesta de GET /conversations."""

    conversations: list[EnrichedConversation] = Field(default_factory=list)


class ThreadResponse(BaseModel):
    """Hilo de una conversación en orden cronológico."""

    conversation_id: str
    messages: list[EnrichedMessage] = Field(default_factory=list)
    marked_read: list[str] = Field(
        default_factory=list,
        description="Mensajes marcados como leídos al abrir el hilo.",
    )


class SendMessageRequest(BaseModel):
    """Payload de POST /conversations/{id}/messages."""

    # Sin min_length: un texto en blanco es un no-op (204), no un error de validación.
    content: str = Field(..., description="Texto plano del mensaje.")


class ConversationStartResponse(BaseModel):
    """Resultado de contactar al vendedor de un anuncio."""

    conversation: Conversation
    created: bool = Field(..., description="False cuando ya existía la conversación.")
