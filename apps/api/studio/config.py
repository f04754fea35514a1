from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
  model_config = SettingsConfigDict(env_file=".env", extra="ignore")

  database_url: str = "postgresql+asyncpg://studio:studio@db:5432/studio_ops"
  fernet_key: str = "AAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA="
  admin_api_token: str = "dev-admin-token-change-me"
  cron_secret: str | None = None
  app_version: str = "v2026-10-01+monday-sync"
  build_sha: str = "dev"
  api_docs_enabled: bool = True

  cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"
  cors_origin_regex: str = r"^http://(localhost|127\.0\.0\.1):3000$"
  trusted_hosts: str = "localhost,127.0.0.1,0.0.0.0,api,web"

  monday_api_token: str | None = None
  monday_api_url: str = "https://api.monday.com/v2"
  monday_api_version: str = "2024-10"
  monday_request_timeout_seconds: float = 30.0
  monday_max_retries: int = 3
  monday_retry_base_delay_seconds: float = 1.0
  monday_page_size: int = 500
  monday_items_batch_size: int = 100
  monday_board_families: str = "flexi"  # comma separated, matched case-insensitively against board names
  monday_legacy_completed_date_column: str = "date__1"
  monday_malformed_log_limit: int = 50
  monday_auto_sync_loop_enabled: bool = True
  monday_auto_sync_poll_seconds: int = 60

  def cors_origin_list(self) -> list[str]:
    return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

  def trusted_host_list(self) -> list[str]:
    return [h.strip() for h in self.trusted_hosts.split(",") if h.strip()]

  def board_family_list(self) -> list[str]:
    return [f.strip().lower() for f in self.monday_board_families.split(",") if f.strip()]


settings = Settings()
