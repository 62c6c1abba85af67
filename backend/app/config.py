import json
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_DATA_DIR = PROJECT_ROOT / "data"


class Settings(BaseSettings):
    # Public URL used to build confirmation links
    base_url: str | None = None
    port: int = 3000

    # Request storage: "file" keeps one JSON document per token, "database" uses SQLAlchemy
    storage_backend: str = "file"
    data_dir: Path = DEFAULT_DATA_DIR
    database_url: str = f"sqlite:///{DEFAULT_DATA_DIR / 'deletion_requests.db'}"

    # Confirmation links stop working after this many hours
    token_expiry_hours: int = 24

    # Outbound mail (Gmail API with a stored refresh token)
    from_email: str = ""
    from_name: str = "UniTok Support"
    support_email: str = ""
    gmail_client_id: str = ""
    gmail_client_secret: str = ""
    gmail_refresh_token: str = ""
    gmail_token_uri: str = "https://oauth2.googleapis.com/token"

    # Redis/Celery Configuration
    redis_url: str = "redis://localhost:6379/0"
    expiry_sweep_minutes: int = 60

    # CORS Configuration
    cors_origins: list[str] = ["http://localhost:3000"]

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS origins from string (JSON array or comma-separated) or list."""
        if isinstance(v, list):
            return v
        if isinstance(v, str):
            v = v.strip()
            if v.startswith("["):
                return json.loads(v)
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @field_validator("storage_backend")
    @classmethod
    def validate_storage_backend(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in ("file", "database"):
            raise ValueError("storage_backend must be 'file' or 'database'")
        return v

    # Rate Limiting Configuration
    rate_limit_requests: int = 100  # per minute, per client address
    submission_rate_limit: int = 5
    submission_rate_window_seconds: int = 60 * 60  # 1 hour

    # Application Settings
    environment: str = "development"
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=[
            PROJECT_ROOT / ".env",
            ".env",
        ],
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def public_base_url(self) -> str:
        if self.base_url:
            return self.base_url.rstrip("/")
        return f"http://localhost:{self.port}"


settings = Settings()
