"""Dependencias comunes para las rutas de mensajería."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException

from marketplace.core.config import settings
from marketplace.core.logging import get_logger
from marketplace.core.security import AuthError, parse_bearer, subject_from_token
from marketplace.repositories.messaging import MessagingRepository
from marketplace.services.supabase import StoreError, get_client

logger = get_logger("marketplace.messaging")


@dataclass(slots=True, frozen=True)
class CurrentUser:
    id: str
    token: str


async def get_current_user(authorization: str | None = Header(default=None)) -> CurrentUser:
    """Resuelve el usuario a partir del JWT de Supabase enviado por el frontend."""
    token = parse_bearer(authorization)
    try:
        user_id = subject_from_token(token, secret=settings.supabase_jwt_secret)
    except AuthError as exc:
        logger.info("auth.rejected", extra={"reason": str(exc)})
        raise HTTPException(status_code=401, detail="auth_required") from exc
    return CurrentUser(id=user_id, token=token or "")


async def get_repository(user: CurrentUser = Depends(get_current_user)) -> MessagingRepository:
    try:
        client = get_client()
    except StoreError as exc:
        logger.error("supabase.unavailable", extra={"error": str(exc)})
        raise HTTPException(status_code=503, detail="Supabase no está configurado") from exc
    return MessagingRepository(client, token=user.token)
