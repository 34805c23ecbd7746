"""Application configuration management using Pydantic Settings."""

from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    Required settings will raise validation errors if not provided.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="storefront-backend", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/staging/production)")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=5000, description="Server port")
    max_request_body_size: int = Field(default=1_048_576, description="Maximum request body size in bytes")

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        description="Comma-separated list of allowed CORS origins",
    )

    # Supabase
    supabase_url: str = Field(..., description="Supabase project URL")
    supabase_secret_key: str = Field(..., description="Supabase secret key for backend operations")
    supabase_signing_key_jwk: str = Field(..., description="Supabase signing key JWK (JSON string) for JWT token verification")

    # Authorization
    jwt_audience: str = Field(default="authenticated", description="Expected JWT audience claim")
    admin_role: str = Field(default="admin", description="Role claim value that grants admin access")

    # payOS
    payos_client_id: str = Field(default="", description="payOS client ID")
    payos_api_key: str = Field(default="", description="payOS API key")
    payos_checksum_key: str = Field(default="", description="payOS checksum key used to sign webhooks")
    payos_timeout_seconds: float = Field(default=10.0, gt=0, description="Upper bound for a single payOS call")
    payos_order_code_min: int = Field(default=100_000, ge=1, description="Smallest generated provider order code")
    payos_order_code_max: int = Field(
        default=9_007_199_254_740_991,
        description="Largest generated provider order code (payOS accepts up to 2^53 - 1)",
    )
    payos_description_max_length: int = Field(default=25, ge=1, description="Provider limit for link descriptions")

    # Frontend
    client_url: str = Field(
        default="http://localhost:3000",
        description="Public storefront URL used to build return/cancel URLs",
    )
    qr_fallback_base_url: str = Field(
        default="https://api.qrserver.com/v1/create-qr-code/?size=250x250&data=",
        description="QR image service used when the provider returns no QR payload",
    )

    @model_validator(mode="after")
    def check_order_code_range(self) -> "Settings":
        """Reject an empty order code range."""
        if self.payos_order_code_min >= self.payos_order_code_max:
            raise ValueError("payos_order_code_min must be smaller than payos_order_code_max")
        return self

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins string into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def is_payos_configured(self) -> bool:
        """Check if all payOS credentials are present."""
        return bool(self.payos_client_id and self.payos_api_key and self.payos_checksum_key)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings: Application settings instance.

    Note:
        Settings are cached using lru_cache for performance.
        Call get_settings.cache_clear() to reload settings.
    """
    return Settings()
