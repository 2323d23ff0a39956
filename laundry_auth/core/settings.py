"""Runtime configuration for laundry-auth."""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SECRET_KEY = "change-me-in-production"


class LaundryAuthSettings(BaseSettings):
    """Settings shared by the API, the CLI and the auth service.

    Values are read from the environment (and an optional ``.env`` file).
    Field names map to upper-case variables, e.g. ``AWS_BUCKET_NAME``.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "Laundry POS Auth"
    debug: bool = False
    log_level: str = "INFO"

    # S3 storage
    aws_access_key_id: str | None = None
    aws_secret_access_key: str | None = None
    aws_default_region: str = "us-east-1"
    aws_bucket_name: str = "laundry-pos"
    aws_url: str | None = None
    aws_retry_attempts: int = 3
    s3_base_path: str = "laundry-auth/"

    # Tokens
    secret_key: str = DEFAULT_SECRET_KEY
    algorithm: str = "HS256"
    access_token_expire_hours: int = Field(default=24, gt=0)

    # Account policy
    session_ttl_hours: int = Field(default=24, gt=0)
    max_sessions: int = Field(default=3, ge=1)
    max_devices: int = Field(default=5, ge=1)
    audit_log_limit: int = Field(default=100, ge=1)
    max_failed_logins: int = Field(default=5, ge=1)
    lockout_minutes: int = Field(default=30, gt=0)
    password_min_length: int = Field(default=8, ge=1)
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)

    # Rate limiting
    login_rate_limit_requests: int = 5
    login_rate_limit_window_seconds: int = 15 * 60
    rate_limit_requests: int = 1000
    rate_limit_window_seconds: int = 15 * 60
    trust_x_forwarded_for: bool = False
    trusted_proxies: list[str] = Field(default_factory=list)

    cors_origins: list[str] = Field(
        default_factory=lambda: [
            "http://localhost:3000",
            "http://localhost:3001",
            "http://localhost:5173",
        ]
    )
    audit_queue_size: int = Field(default=1000, ge=1)

    @field_validator("s3_base_path")
    @classmethod
    def normalize_base_path(cls, value: str) -> str:
        """Ensure the key prefix ends with a single slash."""
        value = value.strip().strip("/")
        return f"{value}/" if value else ""

    @property
    def using_default_secret(self) -> bool:
        """True when tokens are signed with the built-in development key."""
        return self.secret_key == DEFAULT_SECRET_KEY


@lru_cache
def get_settings() -> LaundryAuthSettings:
    """Return the cached settings singleton."""
    return LaundryAuthSettings()
