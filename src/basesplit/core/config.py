from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    environment: str = "dev"
    database_url: str = "sqlite:///./basesplit.db"
    miniapp_url: str = "http://localhost:3000"

    attachment_gateways: list[str] = [
        "https://gateway.pinata.cloud/ipfs/",
        "https://ipfs.io/ipfs/",
        "https://cloudflare-ipfs.com/ipfs/",
    ]
    attachment_timeout_seconds: float = 15.0

    vision_backend: Literal["openai", "ollama", "stub"] = "openai"
    vision_timeout_seconds: float = 60.0
    vision_max_tokens: int = 1000

    openai_api_key: str | None = None
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-4o"

    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "llava"

    default_currency: str = "USD"

    ingestion_queue_size: int = 100
    ingestion_send_ack: bool = True
    ingestion_stale_after_minutes: int = 30

    claim_strict_addresses: bool = False
    auto_settle_when_fully_claimed: bool = True


settings = Settings()
