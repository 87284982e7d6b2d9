from functools import lru_cache
from pathlib import Path
from typing import Annotated, List

from pydantic import AnyHttpUrl, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    app_name: str = Field(default="Parley API", env="APP_NAME", description="Human readable service name")
    environment: str = Field(default="development", env="ENVIRONMENT", description="Deployment environment name")
    debug: bool = Field(default=False, env="DEBUG", description="Enable debug mode")

    cors_origins: Annotated[List[AnyHttpUrl], NoDecode] = Field(
        default_factory=lambda: [
            "http://localhost",
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ],
        env="CORS_ORIGINS",
        description="List of allowed CORS origins",
    )

    database_user: str = Field(default="parley", env="DATABASE_USER")
    database_password: str = Field(default="parley", env="DATABASE_PASSWORD")
    database_host: str = Field(default="db", env="DATABASE_HOST")
    database_port: int = Field(default=3306, env="DATABASE_PORT")
    database_name: str = Field(default="parley", env="DATABASE_NAME")
    database_url_override: str | None = Field(
        default=None,
        env="DATABASE_URL_OVERRIDE",
        description="Full SQLAlchemy URL; takes precedence over the DATABASE_* parts",
    )

    jwt_secret_key: str = Field(default="changeme", env="JWT_SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", env="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(default=30, env="ACCESS_TOKEN_EXPIRE_MINUTES")

    chat_history_default_limit: int = Field(default=50, env="CHAT_HISTORY_DEFAULT_LIMIT")
    chat_history_max_limit: int = Field(default=100, env="CHAT_HISTORY_MAX_LIMIT")
    chat_message_max_length: int = Field(default=4000, env="CHAT_MESSAGE_MAX_LENGTH")
    search_default_limit: int = Field(
        default=20,
        env="SEARCH_DEFAULT_LIMIT",
        description="Number of results returned by message search when no limit is given",
    )
    thread_replier_preview_count: int = Field(
        default=3,
        env="THREAD_REPLIER_PREVIEW_COUNT",
        description="Distinct recent repliers shown under a thread root",
    )

    media_root: Path = Field(default=Path("uploads"), env="MEDIA_ROOT")
    media_base_url: str = Field(default="/api/files", env="MEDIA_BASE_URL")
    max_attachment_size: int = Field(
        default=5 * 1024 * 1024,
        env="MAX_ATTACHMENT_SIZE",
        description="Maximum attachment size in bytes",
    )

    typing_ttl_ms: int = Field(
        default=3000,
        env="TYPING_TTL_MS",
        description="Milliseconds after which a typing indicator is ignored by readers",
    )

    link_unfurl_enabled: bool = Field(
        default=True,
        env="LINK_UNFURL_ENABLED",
        description="Unfurl the first URL of new messages in the background",
    )
    link_unfurl_timeout_seconds: float = Field(default=5.0, env="LINK_UNFURL_TIMEOUT_SECONDS")
    link_unfurl_max_bytes: int = Field(
        default=1024 * 1024,
        env="LINK_UNFURL_MAX_BYTES",
        description="Maximum number of response bytes read while unfurling a link",
    )
    link_unfurl_user_agent: str = Field(
        default="ParleyBot/1.0 (+link preview)", env="LINK_UNFURL_USER_AGENT"
    )

    websocket_keepalive_timeout_seconds: float = Field(
        default=30.0,
        env="WEBSOCKET_KEEPALIVE_TIMEOUT_SECONDS",
        description="Seconds without client traffic before a ping is considered",
    )
    websocket_keepalive_ping_interval_seconds: float = Field(
        default=20.0, env="WEBSOCKET_KEEPALIVE_PING_INTERVAL_SECONDS"
    )

    mention_pattern: str = Field(
        default=r"(?<![\w@])@([A-Za-z0-9_]+)",
        env="MENTION_PATTERN",
        description="Regular expression whose first group captures a mentioned user id",
    )

    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).resolve().parents[1] / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def database_url(self) -> str:
        if self.database_url_override:
            return self.database_url_override
        return (
            f"mysql+pymysql://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v):  # type: ignore[override]
        if v in (None, "", Ellipsis):
            return v
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        if isinstance(v, (list, tuple, set)):
            return list(v)
        return v

    @field_validator("media_root", mode="before")
    @classmethod
    def resolve_media_root(cls, value: str | Path) -> Path:
        if isinstance(value, Path):
            return value.resolve()
        return Path(value).resolve()


@lru_cache
def get_settings() -> Settings:
    return Settings()
