"""
Application settings (Pydantic Settings).

Durations come from the environment in milliseconds, the same unit the
cache TTLs are stored in.
"""
from pathlib import Path
from typing import Annotated

from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

# backend/.env, loaded into the environment before Settings reads it
_env_path = Path(__file__).resolve().parent.parent / ".env"
if _env_path.exists():
    load_dotenv(_env_path)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(extra="ignore")

    environment: str = "development"
    cors_origins: Annotated[list[str], NoDecode] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Shared cache / usage backend; empty means in-process stores
    redis_url: str = ""
    cache_max_entries: int = 256

    # BMKG weather
    bmkg_api_base: str = "https://api.bmkg.go.id/publik"
    bmkg_api_timeout_ms: int = 15_000
    bmkg_cache_ttl_ms: int = 5 * 60 * 1000

    # Badan Pangan food prices
    pangan_api_base: str = "https://api-panelhargav2.badanpangan.go.id/api"
    pangan_api_timeout_ms: int = 15_000
    pangan_cache_ttl_ms: int = 5 * 60 * 1000
    pangan_price_cache_ttl_ms: int = 60 * 1000
    pangan_origin: str = "https://panelharga.badanpangan.go.id"
    pangan_referer: str = "https://panelharga.badanpangan.go.id/"

    # ipgeolocation.io; IPGEO_API_KEYS is comma-separated
    ipgeo_api_base: str = "https://api.ipgeolocation.io/v2"
    ipgeo_api_timeout_ms: int = 30_000
    ipgeo_api_keys: Annotated[list[str], NoDecode] = []
    ipgeo_daily_limit: int = 1000
    geoip_db_path: str = ""
    localhost_fallback_ip: str = "160.22.134.39"

    # NekoLabs AI + Gemini fallback
    nekolabs_api_base: str = "https://api.nekolabs.web.id"
    nekolabs_api_timeout_ms: int = 30_000
    google_gemini_api_key: str = ""
    gemini_timeout_ms: int = 60_000

    @field_validator("cors_origins", "ipgeo_api_keys", mode="before")
    @classmethod
    def split_csv(cls, v):
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @field_validator("redis_url", "google_gemini_api_key", "geoip_db_path", mode="after")
    @classmethod
    def strip_value(cls, v: str) -> str:
        return (v or "").strip()


settings = Settings()
