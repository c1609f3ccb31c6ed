"""Application settings and configuration.

This module defines all configuration options for the stakechat service.
Settings are loaded from environment variables with sensible defaults.
"""

from decimal import Decimal
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="stakechat", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Session tokens and stake cookies
    session_secret: str = Field(alias="SESSION_SECRET")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    session_token_expire_days: int = Field(default=30, alias="SESSION_TOKEN_EXPIRE_DAYS")
    stake_cookie_name: str = Field(default="stake_session", alias="STAKE_COOKIE_NAME")
    stake_cookie_max_age_seconds: int = Field(
        default=60 * 60 * 24 * 30,
        alias="STAKE_COOKIE_MAX_AGE_SECONDS",
    )
    stake_cookie_revalidate: bool = Field(default=True, alias="STAKE_COOKIE_REVALIDATE")
    secure_cookies: bool = Field(default=False, alias="SECURE_COOKIES")

    # Signature policy. Permissive mode authenticates as the recovered signer
    # even when it differs from the claimed wallet (reduced security).
    allow_signer_mismatch: bool = Field(default=False, alias="ALLOW_SIGNER_MISMATCH")

    # EIP-1271 contract wallet verification
    chain_rpc_url: str | None = Field(default=None, alias="CHAIN_RPC_URL")
    chain_rpc_timeout_seconds: float = Field(default=10.0, alias="CHAIN_RPC_TIMEOUT_SECONDS")

    # Stake lookup
    stake_provider: Literal["dune", "indexer"] = Field(default="dune", alias="STAKE_PROVIDER")
    dune_api_key: str | None = Field(default=None, alias="DUNE_API_KEY")
    dune_api_base_url: str = Field(default="https://api.dune.com", alias="DUNE_API_BASE_URL")
    dune_query_id: int = Field(default=5112115, alias="DUNE_QUERY_ID")
    subnet_id: str = Field(
        default="0x29d6c72e0af35f863f8c8345529ad5ad19b70b0d46225228e27c082710db4bfb",
        alias="SUBNET_ID",
    )
    stake_api_url: str | None = Field(default=None, alias="STAKE_API_URL")
    stake_amount_field: str = Field(default="stakedAmount", alias="STAKE_AMOUNT_FIELD")
    stake_token_decimals: int = Field(default=18, ge=0, alias="STAKE_TOKEN_DECIMALS")
    min_stake: Decimal = Field(default=Decimal("10"), alias="MIN_STAKE")
    stake_allowlist: list[str] = Field(default_factory=list, alias="STAKE_ALLOWLIST")
    stake_http_timeout_seconds: float = Field(default=10.0, alias="STAKE_HTTP_TIMEOUT_SECONDS")

    # Rate limiting
    rate_limit: int = Field(default=3, ge=0, alias="RATE_LIMIT")
    rate_window_seconds: int = Field(default=30 * 60, gt=0, alias="RATE_WINDOW_SECONDS")
    anonymous_rate_limit: int = Field(default=3, ge=0, alias="ANONYMOUS_RATE_LIMIT")
    anonymous_window_seconds: int = Field(default=30 * 60, gt=0, alias="ANONYMOUS_WINDOW_SECONDS")
    rate_limit_backend: Literal["memory", "redis"] = Field(
        default="memory",
        alias="RATE_LIMIT_BACKEND",
    )
    redis_url: str = Field(default="redis://localhost:6379", alias="REDIS_URL")
    trust_forwarded_for: bool = Field(default=True, alias="TRUST_FORWARDED_FOR")

    # Downstream chat completion
    chat_completion_url: str | None = Field(default=None, alias="API_URL_CHAT_COMPLETION")
    chat_api_key: str | None = Field(default=None, alias="API_KEY")
    model_id: str | None = Field(default=None, alias="MODEL_ID")
    elevated_model_id: str | None = Field(default=None, alias="ELEVATED_MODEL_ID")
    max_tokens: int = Field(default=1000, gt=0, alias="MAX_TOKENS")
    chat_instructions: str | None = Field(default=None, alias="INSTRUCTIONS")
    chat_timeout_seconds: float = Field(default=60.0, alias="CHAT_TIMEOUT_SECONDS")

    # CORS configuration for the chat widget
    cors_origins: list[str] = Field(default=["*"], alias="CORS_ORIGINS")
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(default=["*"], alias="CORS_ALLOW_HEADERS")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        populate_by_name=True,
        extra="ignore",
    )

    @field_validator("stake_allowlist")
    @classmethod
    def _lowercase_allowlist(cls, value: list[str]) -> list[str]:
        return [entry.strip().lower() for entry in value if entry.strip()]

    @property
    def session_token_ttl_seconds(self) -> int:
        """Return the session token lifetime in seconds."""
        return self.session_token_expire_days * 24 * 60 * 60


settings = Settings()  # type: ignore[call-arg]
