"""Handle compartido hacia Supabase REST (PostgREST).

El proceso mantiene un único `SupabaseClient` con un `httpx.AsyncClient`
persistente. Se crea de forma explícita con `init_client` (lifespan de la app)
y se libera con `close_client`; `get_client` nunca lo recrea.
"""

from __future__ import annotations

from typing import Any

import httpx

from marketplace.core.config import Settings
from marketplace.core.logging import get_logger
from marketplace.core.security import mask_secret

logger = get_logger(__name__)

UNIQUE_VIOLATION = "23505"

_FRIENDLY_MESSAGES = {
    "PGRST301": "Database connection timeout. Please try again.",
    "PGRST116": "Record not found.",
}


class StoreError(RuntimeError):
    """Fallo de transporte o respuesta de error de Supabase."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        code: str | None = None,
        body: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.body = body

    @property
    def is_unique_violation(self) -> bool:
        return self.code == UNIQUE_VIOLATION or self.status_code == 409


def describe_store_error(exc: StoreError, operation: str) -> str:
    """Traduce un `StoreError` a un mensaje apto para mostrar al usuario."""
    if exc.code in _FRIENDLY_MESSAGES:
        return _FRIENDLY_MESSAGES[exc.code]
    if "timeout" in str(exc).lower():
        return "Request timed out. Please try again."
    return f"Failed to {operation}. Please try again."


class SupabaseClient:
    """Cliente mínimo de PostgREST que reenvía el JWT del usuario (RLS)."""

    def __init__(
        self,
        base_url: str,
        *,
        anon_key: str | None,
        service_role: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._anon_key = anon_key
        self._service_role = service_role
        self._http = httpx.AsyncClient(
            base_url=self._base_url, timeout=timeout, transport=transport
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    async def request(
        self,
        method: str,
        path: str,
        *,
        token: str | None,
        params: dict[str, str] | None = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> httpx.Response:
        headers = self._headers(token, prefer, has_body=json is not None)
        try:
            response = await self._http.request(
                method, path, params=params, json=json, headers=headers
            )
        except httpx.RequestError as exc:
            logger.exception(
                "supabase.request_failed",
                extra={"path": path, "http_method": method, "error": str(exc)},
            )
            kind = "timeout" if isinstance(exc, httpx.TimeoutException) else "network error"
            raise StoreError(f"Supabase {kind} on {method} {path}: {exc}") from exc

        if response.status_code >= 400:
            code = _error_code(response)
            logger.error(
                "supabase.response_error",
                extra={
                    "path": path,
                    "http_method": method,
                    "status": response.status_code,
                    "code": code,
                    "body": response.text,
                },
            )
            raise StoreError(
                f"Supabase responded {response.status_code} on {method} {path}",
                status_code=response.status_code,
                code=code,
                body=response.text,
            )
        return response

    async def select(
        self, table: str, *, token: str | None, params: dict[str, str]
    ) -> list[dict[str, Any]]:
        response = await self.request("GET", f"/rest/v1/{table}", token=token, params=params)
        return self.json_list(response)

    def _headers(self, token: str | None, prefer: str | None, *, has_body: bool) -> dict[str, str]:
        headers: dict[str, str] = {"Accept": "application/json"}
        if prefer:
            headers["Prefer"] = prefer
        if has_body:
            headers["Content-Type"] = "application/json"

        if token:
            headers["Authorization"] = f"Bearer {token}"
            if self._anon_key:
                headers["apikey"] = self._anon_key
        elif self._service_role:
            headers["Authorization"] = f"Bearer {self._service_role}"
            headers["apikey"] = self._service_role
        else:
            raise StoreError("Missing user token and SUPABASE_SERVICE_ROLE")
        return headers

    @staticmethod
    def json_list(response: httpx.Response) -> list[dict[str, Any]]:
        if not response.content:
            return []
        try:
            payload = response.json()
        except ValueError as exc:
            logger.error(
                "supabase.invalid_payload",
                extra={"status": response.status_code, "body": response.text[:500]},
            )
            raise StoreError(
                "Unexpected Supabase payload (not JSON)",
                status_code=response.status_code,
                body=response.text,
            ) from exc
        if payload is None:
            return []
        if not isinstance(payload, list):
            raise StoreError("Unexpected Supabase payload (expected a list)")
        return [row for row in payload if isinstance(row, dict)]

    async def aclose(self) -> None:
        await self._http.aclose()


def _error_code(response: httpx.Response) -> str | None:
    try:
        payload = response.json()
    except ValueError:
        return None
    if isinstance(payload, dict) and payload.get("code") is not None:
        return str(payload["code"])
    return None


_client: SupabaseClient | None = None


def init_client(
    config: Settings, *, transport: httpx.AsyncBaseTransport | None = None
) -> SupabaseClient:
    """Crea el handle compartido; llamadas posteriores devuelven el mismo."""
    global _client
    if _client is not None:
        return _client
    if not config.supabase_url:
        raise StoreError("Supabase is not configured (SUPABASE_URL)")
    _client = SupabaseClient(
        config.supabase_url,
        anon_key=config.supabase_anon,
        service_role=config.supabase_service_role,
        timeout=config.supabase_timeout_seconds,
        transport=transport,
    )
    logger.info(
        "supabase.client_initialized",
        extra={"base_url": _client.base_url, "anon_key": mask_secret(config.supabase_anon)},
    )
    return _client


def get_client() -> SupabaseClient:
    if _client is None:
        raise StoreError("Supabase client not initialised; call init_client() first")
    return _client


async def close_client() -> None:
    global _client
    if _client is None:
        return
    client, _client = _client, None
    await client.aclose()
