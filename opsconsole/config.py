import logging
from pydantic_settings import BaseSettings
from pydantic import model_validator, ConfigDict
from functools import lru_cache

logger = logging.getLogger(__name__)

DEFAULT_SECRET_KEY = "change-me-in-production"


class Settings(BaseSettings):
    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Environment: "development" or "production"
    environment: str = "development"

    database_url: str = "postgresql+asyncpg://localhost/opsconsole"
    # Lending-core tables (attribution, funnel, rating). Empty = same DB as the console.
    report_database_url: str = ""

    @model_validator(mode="before")
    @classmethod
    def _fix_database_urls_for_asyncpg(cls, values: dict) -> dict:
        """Hosted Postgres gives postgresql://, we need postgresql+asyncpg:// for asyncpg."""
        if not isinstance(values, dict):
            return values
        for field in ("database_url", "report_database_url"):
            url = values.get(field) or ""
            if url.startswith("postgresql://") and "+asyncpg" not in url:
                values[field] = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        return values

    secret_key: str = DEFAULT_SECRET_KEY
    jwt_expire_hours: int = 24 * 7
    bcrypt_rounds: int = 12
    cors_origins: str = "http://localhost:5173,http://localhost:3000"
    encryption_key: str = ""

    # Rate limiting (per client IP)
    rate_limit_enabled: bool = True
    rate_limit_window_seconds: int = 15 * 60
    rate_limit_max_requests: int = 100
    login_rate_limit_max: int = 20

    # Aliyun OSS (partner logos, news images)
    oss_access_key_id: str = ""
    oss_access_key_secret: str = ""
    oss_endpoint: str = "oss-ap-southeast-5.aliyuncs.com"
    oss_bucket: str = ""
    oss_bucket_domain: str = ""
    upload_max_bytes: int = 5 * 1024 * 1024

    # Client library defaults
    api_base_url: str = "http://localhost:8000/api"
    client_timeout_seconds: float = 10.0

    @model_validator(mode="after")
    def _validate_production_settings(self) -> "Settings":
        """Enforce that critical secrets are set when running in production."""
        if self.is_production:
            if self.secret_key == DEFAULT_SECRET_KEY:
                raise ValueError(
                    "SECRET_KEY must be set to a secure value in production. "
                    "Generate one with: python -c \"import secrets; print(secrets.token_hex(32))\""
                )
            if not self.encryption_key:
                raise ValueError(
                    "ENCRYPTION_KEY must be set in production. "
                    "Generate one with: python -c \"from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())\""
                )
            if not self.database_url or "localhost" in self.database_url:
                logger.warning("DATABASE_URL appears to point at localhost in production.")
        return self

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def effective_report_database_url(self) -> str:
        return self.report_database_url or self.database_url

    @property
    def cors_origin_list(self) -> list[str]:
        origins = [o.strip() for o in self.cors_origins.split(",") if o.strip()]
        return origins or ["http://localhost:5173", "http://localhost:3000"]

    @property
    def oss_configured(self) -> bool:
        return bool(self.oss_access_key_id and self.oss_access_key_secret and self.oss_bucket)


@lru_cache
def get_settings() -> Settings:
    return Settings()
