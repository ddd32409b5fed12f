"""
config.py — RacePass Global Configuration
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import List


class Settings(BaseSettings):

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # App
    APP_NAME: str = "RacePass"
    APP_VERSION: str = "0.2.0"
    ENVIRONMENT: str = "development"

    # Issuer
    ISSUER_PRIVATE_KEY: str = ""                 # empty → well-known dev key (refused in production)
    CREDENTIAL_MAC_SECRET: str = "default-secret"
    CREDENTIAL_ISSUER: str = "did:racepass:issuer"
    CREDENTIAL_TTL_DAYS: int = 365
    COUNTRY_CODE: str = "IN"

    # Rate limiting (per subject)
    RATE_LIMIT_WINDOW_MS: int = 60_000
    RATE_LIMIT_MAX: int = 5

    # Anchoring: ordered registry, any of: simulation | ethereum | polygon
    ANCHOR_BACKENDS: List[str] = ["simulation"]
    ETHEREUM_RPC_URL: str = "https://sepolia.infura.io/v3/YOUR_KEY"
    ETHEREUM_CONTRACT_ADDRESS: str = ""
    ETHEREUM_CHAIN_ID: int = 11155111
    POLYGON_RPC_URL: str = "https://rpc-amoy.polygon.technology"
    POLYGON_CONTRACT_ADDRESS: str = ""
    POLYGON_CHAIN_ID: int = 80002

    # State store
    STATE_BACKEND: str = "memory"                # memory | sql
    STATE_DATABASE_URL: str = "sqlite:///./racepass.db"
    STATE_ENCRYPTION_KEY: str = ""               # Fernet key; seals commitment secrets at rest

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""


@lru_cache()
def get_settings() -> Settings:
    return Settings()
