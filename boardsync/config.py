from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
  model_config = SettingsConfigDict(env_file=".env", extra="ignore")

  database_url: str = "postgresql+asyncpg://boardsync:boardsync@db:5432/boardsync"
  database_echo: bool = False
  app_secret: str = "dev-secret-change-me"
  app_version: str = "v2026-10-19"
  build_sha: str = "dev"
  api_docs_enabled: bool = True

  jwt_algorithm: str = "HS256"
  jwt_ttl_minutes: int = 60 * 24 * 7

  rate_limit_login_ip_per_minute: int = 60
  rate_limit_login_email_per_minute: int = 20

  cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"
  cors_origin_regex: str = r"^http://(localhost|127\.0\.0\.1):3000$"
  trusted_hosts: str = "localhost,127.0.0.1,api,web,testserver"

  redis_url: str | None = "redis://redis:6379/0"
  presence_key_prefix: str = "presence:"
  socketio_path: str = "socket.io"
  socketio_use_redis_manager: bool = False

  dispatch_timeout_seconds: float = 10.0
  max_subtask_depth: int = 32

  log_level: str = "INFO"

  def cors_origin_list(self) -> list[str]:
    return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

  def trusted_host_list(self) -> list[str]:
    return [h.strip() for h in self.trusted_hosts.split(",") if h.strip()]


settings = Settings()
