"""Configuración central basada en variables de entorno."""

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Valores globales leídos desde `.env` o el entorno (prefijo `MARKET_`)."""

    environment: str = "development"
    log_level: str | None = Field(
        default=None,
        description="Nivel de logging global (debug, info, warning). Sin valor, depende del ambiente.",
    )
    log_file_path: str | None = Field(
        default=None,
        description="Bitácora principal rotativa; los archivos por logger se crean junto a ella.",
    )
    cors_origins: tuple[str, ...] = Field(
        default=("*",),
        description="Orígenes permitidos para el frontend del marketplace.",
    )
    supabase_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "MARKET_SUPABASE_URL", "SUPABASE_URL", "NEXT_PUBLIC_SUPABASE_URL"
        ),
    )
    # El frontend publica el anon key con prefijo NEXT_PUBLIC_; se aceptan ambas variantes.
    supabase_anon: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "MARKET_SUPABASE_ANON", "SUPABASE_ANON_KEY", "NEXT_PUBLIC_SUPABASE_ANON_KEY"
        ),
    )
    supabase_service_role: str | None = None
    supabase_jwt_secret: str | None = Field(
        default=None,
        description="Secreto HS256 del proyecto; sin él, el `sub` del JWT se lee sin verificar.",
    )
    supabase_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Timeout por request hacia Supabase REST.",
    )
    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="MARKET_", extra="ignore", populate_by_name=True
    )


settings = Settings()
