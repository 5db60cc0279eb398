"""Application configuration via Pydantic BaseSettings."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    development = "development"
    staging = "staging"
    production = "production"


class ConfigStoreBackend(str, Enum):
    redis = "redis"
    memory = "memory"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Environment
    ENVIRONMENT: Environment = Environment.development

    # Logging
    LOG_LEVEL: str = "INFO"

    # Persisted connection configuration (single key-value entry)
    REDIS_URL: str = "redis://localhost:6379/0"
    CONFIG_STORE_BACKEND: ConfigStoreBackend = ConfigStoreBackend.redis
    CONFIG_STORE_KEY: str = "insureflow_google_config"

    # CORS
    CORS_ALLOWED_ORIGINS: str = "*"

    # Origin the browser UI is served from; users must register it with their OAuth client
    PUBLIC_ORIGIN: str = "http://localhost:8000"

    # Google OAuth (installed-app flow). Client ID and API key come from the wizard.
    GOOGLE_OAUTH_CLIENT_SECRET: str = ""
    GOOGLE_OAUTH_REDIRECT_PORT: int = 0  # 0 = pick a free local port

    # Spreadsheet layout
    POLICY_SHEET_TITLE: str = "Policies"
    DEFAULT_SPREADSHEET_TITLE: str = "InsureFlow CRM Data"
    DRIVE_LIST_PAGE_SIZE: int = 10

    # Headless append (scripts/append_policy.py) via service account
    GOOGLE_SERVICE_ACCOUNT_FILE: str = ""  # Path to service account JSON key file
    GOOGLE_SERVICE_ACCOUNT_JSON_B64: str = ""  # Base64 JSON for containerized deployments
    APPEND_SPREADSHEET_ID: str = ""

    def get_service_account_path(self) -> str | None:
        """Return path to Google service account JSON file.

        Prefers GOOGLE_SERVICE_ACCOUNT_FILE (direct path) if set.
        Falls back to decoding GOOGLE_SERVICE_ACCOUNT_JSON_B64 into a temp file
        for containerized deployments where mounting a file is impractical.
        Returns None if neither is configured.
        """
        if self.GOOGLE_SERVICE_ACCOUNT_FILE:
            return self.GOOGLE_SERVICE_ACCOUNT_FILE
        if self.GOOGLE_SERVICE_ACCOUNT_JSON_B64:
            import base64
            import os
            import tempfile

            decoded = base64.b64decode(self.GOOGLE_SERVICE_ACCOUNT_JSON_B64)
            tmp_path = os.path.join(tempfile.gettempdir(), "insureflow-service-account.json")
            with open(tmp_path, "wb") as f:
                f.write(decoded)
            return tmp_path
        return None


@lru_cache
def get_settings() -> Settings:
    """Singleton settings instance."""
    return Settings()
