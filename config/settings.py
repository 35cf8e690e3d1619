# rfp_desk/config/settings.py

import os
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
ENV_FILE_PATH = os.path.join(PROJECT_ROOT, '.env')


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=ENV_FILE_PATH,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Storage. PostgreSQL is used when a host is configured, SQLite otherwise.
    sqlite_path: str = Field(
        default=os.path.join(PROJECT_ROOT, "rfp_desk.sqlite")
    )
    db_host: Optional[str] = Field(default=None)
    db_port: int = Field(default=5432)
    db_name: Optional[str] = Field(default=None)
    db_user: Optional[str] = Field(default=None)
    db_password: Optional[str] = Field(default=None)

    # Natural-language extraction service (OpenAI-compatible chat API)
    llm_base_url: str = Field(default="https://api.openai.com")
    llm_api_key: Optional[str] = Field(default=None)
    llm_model: str = Field(default="gpt-4-turbo-preview")
    llm_timeout: int = Field(default=60)
    llm_temperature: float = Field(default=0.7)
    llm_max_tokens: int = Field(default=2000)
    oracle_max_retries: int = Field(default=3)
    oracle_base_delay_seconds: float = Field(default=1.0)

    review_confidence_threshold: float = Field(default=0.7)
    default_recommendation_confidence: float = Field(default=0.8)

    # IMAP mailbox configuration
    imap_host: Optional[str] = Field(default=None)
    imap_port: int = Field(default=993)
    imap_user: Optional[str] = Field(default=None)
    imap_password: Optional[str] = Field(default=None)
    imap_mailbox: str = Field(default="INBOX")
    imap_use_ssl: bool = Field(default=True)
    email_poll_minutes: int = Field(default=1)
    email_polling_enabled: bool = Field(default=False)

    # Outbound email content
    email_user: Optional[str] = Field(default=None)
    procurement_team_name: str = Field(default="Procurement Team")

    @field_validator("review_confidence_threshold", "default_recommendation_confidence")
    @classmethod
    def _check_unit_interval(cls, value: float) -> float:
        if not 0.0 <= value <= 1.0:
            raise ValueError("confidence settings must lie within [0, 1]")
        return value

    @field_validator("oracle_max_retries")
    @classmethod
    def _check_retries(cls, value: int) -> int:
        if value < 0:
            raise ValueError("oracle_max_retries must not be negative")
        return value


try:
    settings = Settings()
except Exception as e:
    print(f"!!! FATAL ERROR: Could not load application settings from .env file: {e}")
    raise
