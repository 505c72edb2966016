from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    environment: str = "development"
    log_level: str = "INFO"

    # Marketplace REST service
    marketplace_api_url: str = "http://localhost:8080"
    upstream_timeout_seconds: float = 10.0
    upstream_auth_token: Optional[str] = None  # service token when no user token is forwarded

    # Offer views
    offers_page_size: int = 10
    placeholder_title: str = "Unnamed Item"

    # Refresh policy
    refresh_poll_interval_seconds: float = 30.0  # 0 disables polling
    refresh_retry_after_seconds: int = 15

    # Per-user sessions unused this long are closed and stop polling
    session_idle_timeout_seconds: float = 1800.0
    session_sweep_interval_seconds: float = 60.0

    # Pending/countered offers older than this are treated as expired locally
    trade_expiry_hours: int = 72

    # The marketplace completes a trade once buyer and seller have both marked it
    bilateral_completion: bool = True


settings = Settings()
