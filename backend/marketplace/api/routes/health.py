"""Endpoint de salud mínimo para validaciones rápidas."""
from fastapi import APIRouter

from marketplace.core.config import settings

router = APIRouter(prefix="/health", tags=["health"])


@router.get("", summary="Estado del servicio")
def healthcheck() -> dict[str, str | bool]:
    """Indica que la API está viva y si hay Supabase configurado."""
    return {"status": "ok", "supabase_configured": bool(settings.supabase_url)}
