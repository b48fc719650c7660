"""Endpoints de conversaciones y mensajes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Path, Response, status

from marketplace.core.logging import get_logger
from marketplace.repositories.messaging import MessagingRepository
from marketplace.services.supabase import StoreError, describe_store_error

from . import schemas, service
from .deps import CurrentUser, get_current_user, get_repository

router = APIRouter(prefix="", tags=["messaging"])

logger = get_logger("marketplace.messaging")

SELF_MESSAGE_NOTICE = "You cannot start a conversation with your own listing"


def _store_failure(exc: StoreError, notice: str, operation: str, **extra: object) -> HTTPException:
    logger.error(
        "messaging.store_failure",
        extra={
            **extra,
            "operation": operation,
            "status": exc.status_code,
            "code": exc.code,
            "reason": describe_store_error(exc, operation),
        },
    )
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=notice)


def _domain_failure(exc: service.MessagingError) -> HTTPException:
    if isinstance(exc, service.ConversationNotFoundError):
        return HTTPException(status_code=404, detail="conversation_not_found")
    if isinstance(exc, service.ListingNotFoundError):
        return HTTPException(status_code=404, detail="listing_not_found")
    if isinstance(exc, service.NotParticipantError):
        return HTTPException(status_code=403, detail="forbidden")
    if isinstance(exc, service.SelfConversationError):
        return HTTPException(status_code=400, detail=SELF_MESSAGE_NOTICE)
    return HTTPException(status_code=400, detail=str(exc) or "messaging_error")


def _thread_response(thread: service.Thread) -> schemas.ThreadResponse:
    return schemas.ThreadResponse(
        conversation_id=thread.conversation.id,
        messages=thread.messages,
        marked_read=thread.marked_read,
    )


@router.get(
    "/conversations",
    response_model=schemas.ConversationListResponse,
    summary="Bandeja de conversaciones del usuario",
)
async def get_conversations(
    user: CurrentUser = Depends(get_current_user),
    repo: MessagingRepository = Depends(get_repository),
) -> schemas.ConversationListResponse:
    try:
        conversations = await service.list_conversations(repo, user.id)
    except StoreError as exc:
        raise _store_failure(
            exc, "Failed to load conversations", "load conversations", user_id=user.id
        ) from exc
    return schemas.ConversationListResponse(conversations=conversations)


@router.get(
    "/conversations/{conversation_id}/messages",
    response_model=schemas.ThreadResponse,
    summary="Hilo de mensajes; marca como leídos los de la contraparte",
)
async def get_thread(
    conversation_id: str = Path(..., min_length=1),
    user: CurrentUser = Depends(get_current_user),
    repo: MessagingRepository = Depends(get_repository),
) -> schemas.ThreadResponse:
    try:
        thread = await service.open_thread(repo, conversation_id, user.id)
    except service.MessagingError as exc:
        raise _domain_failure(exc) from exc
    except StoreError as exc:
        raise _store_failure(
            exc, "Failed to load messages", "load messages", conversation_id=conversation_id
        ) from exc
    return _thread_response(thread)


@router.post(
    "/conversations/{conversation_id}/messages",
    response_model=schemas.ThreadResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Envía un mensaje y devuelve el hilo actualizado",
    responses={204: {"description": "Texto vacío; no se envió nada."}},
)
async def post_message(
    payload: schemas.SendMessageRequest,
    conversation_id: str = Path(..., min_length=1),
    user: CurrentUser = Depends(get_current_user),
    repo: MessagingRepository = Depends(get_repository),
):
    try:
        thread = await service.send_message(repo, conversation_id, user.id, payload.content)
    except service.MessagingError as exc:
        raise _domain_failure(exc) from exc
    except StoreError as exc:
        raise _store_failure(
            exc, "Failed to send message", "send message", conversation_id=conversation_id
        ) from exc
    if thread is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return _thread_response(thread)


@router.post(
    "/listings/{listing_id}/conversations",
    response_model=schemas.ConversationStartResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Contacta al vendedor de un anuncio (busca o crea la conversación)",
)
async def post_listing_conversation(
    response: Response,
    listing_id: str = Path(..., min_length=1),
    user: CurrentUser = Depends(get_current_user),
    repo: MessagingRepository = Depends(get_repository),
) -> schemas.ConversationStartResponse:
    try:
        started = await service.start_conversation(repo, listing_id, user.id)
    except service.MessagingError as exc:
        raise _domain_failure(exc) from exc
    except StoreError as exc:
        raise _store_failure(
            exc, "Failed to start conversation", "start conversation", listing_id=listing_id
        ) from exc
    if not started.created:
        response.status_code = status.HTTP_200_OK
    return schemas.ConversationStartResponse(
        conversation=started.conversation, created=started.created
    )
