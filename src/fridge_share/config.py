"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    supabase_url: str
    supabase_service_key: str
    invite_code_length: int = 6
    invite_code_attempts: int = 5
    expiring_soon_days: int = 3
    default_unit: str = "pcs"
    default_fridge_name: str = "My fridge"
    history_limit: int = 50
    openfoodfacts_base_url: str = "https://world.openfoodfacts.org"
    openfoodfacts_user_agent: str = "fridge-share/0.1"
    barcode_lookup_enabled: bool = True
    barcode_cache_ttl_seconds: int = 86400
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )
