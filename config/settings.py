"""
Contact Card Configuration Settings
"""
from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Storage (use CONTACTCARD_ prefix)
    db_path: Path = Field(
        default=Path("./data/contactcard.db"),
        alias="CONTACTCARD_DB_PATH",
        description="SQLite database holding people, facts, entries and app state"
    )
    contacts_csv_path: Path = Field(
        default=Path("./data/contacts.csv"),
        alias="CONTACTCARD_CONTACTS_CSV",
        description="Address-book CSV export used as the external contact snapshot"
    )

    # Server (keep in sync with scripts and client relay_url)
    port: int = Field(default=8000, alias="CONTACTCARD_PORT")
    host: str = Field(default="0.0.0.0", alias="CONTACTCARD_HOST")
    log_level: str = Field(default="INFO", alias="CONTACTCARD_LOG_LEVEL")

    # Server-held credential for "managed" mode (standard env var name)
    anthropic_api_key: str = Field(default="", alias="ANTHROPIC_API_KEY")

    # Upstream provider used by the relay
    upstream_url: str = Field(
        default="https://api.anthropic.com/v1/messages",
        alias="CONTACTCARD_UPSTREAM_URL"
    )
    anthropic_version: str = Field(default="2023-06-01", alias="CONTACTCARD_ANTHROPIC_VERSION")
    model: str = Field(default="claude-sonnet-4-5-20250929", alias="CONTACTCARD_MODEL")
    relay_max_tokens: int = Field(default=2048, alias="CONTACTCARD_RELAY_MAX_TOKENS")

    # Client side of the relay (extraction/query engines)
    relay_url: str = Field(
        default="http://localhost:8000/api/relay",
        alias="CONTACTCARD_RELAY_URL"
    )
    auth_mode: str = Field(
        default="managed",
        alias="CONTACTCARD_AUTH_MODE",
        description="'managed' uses the relay's key, 'byok' forwards the stored key"
    )
    request_timeout: float = Field(default=60.0, alias="CONTACTCARD_REQUEST_TIMEOUT")

    # Keychain entry for the bring-your-own-key credential
    keyring_service: str = Field(default="contactcard", alias="CONTACTCARD_KEYRING_SERVICE")
    keyring_username: str = "anthropic_api_key"

    # Open reviews are kept in memory only; abandoned ones are evicted
    review_max_age_minutes: int = Field(default=24 * 60, alias="CONTACTCARD_REVIEW_MAX_AGE_MINUTES")
    max_open_reviews: int = Field(default=100, alias="CONTACTCARD_MAX_OPEN_REVIEWS")

    # Credits
    free_credits: int = Field(default=50, alias="CONTACTCARD_FREE_CREDITS")
    low_credit_threshold: int = Field(default=5, alias="CONTACTCARD_LOW_CREDIT_THRESHOLD")

    @property
    def server_key_configured(self) -> bool:
        """Check if the relay has a server-held credential."""
        return bool(self.anthropic_api_key and self.anthropic_api_key.strip())


settings = Settings()
