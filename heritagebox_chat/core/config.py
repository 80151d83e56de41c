"""Application configuration via pydantic-settings.

All values loaded from .env file at the project root.
The .env file takes precedence over OS-level environment variables
so stale system env vars never shadow the project config.
No hardcoded secrets anywhere.
"""

from pathlib import Path
from typing import Tuple, Type

from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

# Resolve .env from project root (two levels up from heritagebox_chat/core/config.py)
_ENV_FILE = Path(__file__).resolve().parents[2] / ".env"


class Settings(BaseSettings):
    """Central application settings. .env file wins over OS env vars."""

    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        """Override source priority: .env file > OS env vars > defaults."""
        return (init_settings, dotenv_settings, env_settings, file_secret_settings)

    # --- Slack (agent channel) ---
    slack_bot_token: str = ""
    slack_channel_id: str = ""
    slack_signing_secret: str = ""
    slack_bot_user_id: str = ""
    slack_api_url: str = "https://slack.com/api"

    # --- Airtable (transcript store) ---
    airtable_api_key: str = ""
    airtable_base_id: str = ""
    airtable_table_id: str = "Chat Sessions"
    airtable_api_url: str = "https://api.airtable.com/v0"

    # --- OpenAI (AI responder) ---
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"

    # --- Conversation ---
    max_message_length: int = 1000
    handoff_timeout_seconds: float = 10.0
    provider_timeout_seconds: float = 10.0
    session_idle_timeout_minutes: int = 60
    poll_interval_seconds: float = 2.0

    # --- Relay buffer retention ---
    relay_max_age_seconds: int | None = 24 * 60 * 60
    relay_max_entries: int | None = 500
    relay_sweep_minutes: int = 5

    # --- App ---
    cors_origins: list[str] = []
    app_env: str = "development"
    log_level: str = "INFO"

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def airtable_configured(self) -> bool:
        """True when both the Airtable credential and base are set."""
        return bool(self.airtable_api_key and self.airtable_base_id)


settings = Settings()
