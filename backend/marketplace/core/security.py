"""Helpers de autenticación sobre los JWT emitidos por Supabase Auth."""

from __future__ import annotations

import base64
import hmac
import json
import time
from hashlib import sha256
from typing import Any


class AuthError(Exception):
    """Token ausente, malformado, con firma inválida o expirado."""


def parse_bearer(authorization: str | None) -> str | None:
    """Extrae el token de una cabecera ``Authorization: Bearer <token>``."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


def _b64url_decode(segment: str) -> bytes:
    rem = len(segment) % 4
    if rem:
        segment += "=" * (4 - rem)
    return base64.urlsafe_b64decode(segment.encode())


def decode_claims(token: str, *, secret: str | None, now: float | None = None) -> dict[str, Any]:
    """Decodifica el payload de un JWT HS256.

    Con ``secret`` se verifica la firma; sin él los claims se leen tal cual,
    igual que hace el cliente de Supabase en el navegador. Si el token trae
    ``exp`` y ya venció se rechaza en ambos casos.
    """
    try:
        header_b64, payload_b64, signature_b64 = token.split(".")
    except ValueError as exc:
        raise AuthError("malformed_token") from exc

    if secret:
        signing_input = f"{header_b64}.{payload_b64}".encode()
        expected = hmac.new(secret.encode(), signing_input, sha256).digest()
        try:
            provided = _b64url_decode(signature_b64)
        except ValueError as exc:
            raise AuthError("malformed_token") from exc
        if not hmac.compare_digest(expected, provided):
            raise AuthError("invalid_signature")

    try:
        claims = json.loads(_b64url_decode(payload_b64).decode("utf-8"))
    except (ValueError, UnicodeDecodeError) as exc:
        raise AuthError("malformed_token") from exc
    if not isinstance(claims, dict):
        raise AuthError("malformed_token")

    exp = claims.get("exp")
    if isinstance(exp, (int, float)) and exp < (time.time() if now is None else now):
        raise AuthError("token_expired")
    return claims


def subject_from_token(token: str | None, *, secret: str | None) -> str:
    """Retorna el ``sub`` (id de usuario) del token o lanza `AuthError`."""
    if not token:
        raise AuthError("auth_required")
    sub = decode_claims(token, secret=secret).get("sub")
    if not sub:
        raise AuthError("missing_subject")
    return str(sub)


def mask_secret(value: str | None) -> str | None:
    """Enmascara secretos para logging seguro."""
    if not value:
        return value
    if len(value) <= 4:
        return "***"
    return f"{value[:2]}***{value[-2:]}"
