from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
  model_config = SettingsConfigDict(env_file=".env", extra="ignore", frozen=True)

  database_url: str = "postgresql+asyncpg://taskhub:taskhub@db:5432/taskhub"
  auto_create_schema: bool = True
  app_secret: str = "dev-secret-change-me"
  app_version: str = "0.1.0"
  build_sha: str = "dev"
  log_level: str = "INFO"

  jwt_algorithm: str = "HS256"
  jwt_expiration_seconds: int = 60 * 60 * 24
  bcrypt_rounds: int = 12
  magic_link_ttl_minutes: int = 5

  admin_role_name: str = "Admin"
  default_role_name: str = "User"
  access_grant_policy: str = "insert"  # insert | upsert

  storage_backend: str = "local"  # local | memory
  storage_dir: str = "data/uploads"
  max_attachment_bytes: int = 10 * 1024 * 1024

  frontend_url: str = "http://localhost:3000"
  cookie_secure: bool = False
  cookie_domain: str | None = None

  mail_provider: str = "log"  # log | smtp
  mail_from: str = "TaskHub <no-reply@taskhub.local>"
  smtp_host: str | None = None
  smtp_port: int = 587
  smtp_username: str | None = None
  smtp_password: str | None = None
  smtp_starttls: bool = True

  cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"

  def cors_origin_list(self) -> list[str]:
    return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

  def is_test_db(self) -> bool:
    db_name = self.database_url.rsplit("/", 1)[-1]
    return "test" in db_name


settings = Settings()
