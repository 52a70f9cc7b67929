# schoolpay/core/config.py - Environment-driven settings (pydantic-settings)
from pydantic import Field, validator
from pydantic_settings import BaseSettings
from typing import List, Optional

ENVIRONMENTS = ("dev", "development", "test", "staging", "prod", "production")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
DATABASE_SCHEMES = ("postgresql://", "postgresql+psycopg://", "postgresql+psycopg2://", "sqlite:///")


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    """SchoolPay configuration, read from the environment and an optional .env file"""

    ENV: str = Field(default="dev", description="dev, test, staging or prod")
    API_TITLE: str = Field(default="SchoolPay API")
    API_VERSION: str = Field(default="1.0.0")
    LOG_LEVEL: str = Field(default="INFO")

    # Ledger database
    DATABASE_URL: str = Field(..., description="SQLAlchemy URL (PostgreSQL in production, SQLite for tests)")
    DATABASE_ECHO: bool = Field(default=False)
    DATABASE_POOL_SIZE: int = Field(default=5, ge=1, le=100)
    DATABASE_MAX_OVERFLOW: int = Field(default=10, ge=0, le=100)
    DATABASE_POOL_TIMEOUT: int = Field(default=30, ge=1, le=300)
    DATABASE_POOL_RECYCLE: int = Field(default=3600, ge=300)

    # Bearer tokens and password hashing
    JWT_SECRET: str = Field(..., min_length=32)
    JWT_ALGORITHM: str = Field(default="HS256")
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=60, ge=1, le=10080)
    JWT_ISSUER: str = Field(default="schoolpay")
    JWT_AUDIENCE: str = Field(default="schoolpay-users")
    BCRYPT_ROUNDS: int = Field(default=12, ge=4, le=15)

    # Browser clients; comma separated
    CORS_ORIGINS: str = Field(default="*")
    CORS_ALLOW_HEADERS: str = Field(default="authorization, x-client-info, apikey, content-type")

    # FedaPay
    FEDAPAY_API_URL: str = Field(default="https://sandbox-api.fedapay.com/v1")
    FEDAPAY_SECRET_KEY: Optional[str] = Field(default=None, description="Unset disables gateway checkouts")
    FEDAPAY_WEBHOOK_SECRET: Optional[str] = Field(default=None, description="Unset accepts unsigned webhooks")
    FEDAPAY_TIMEOUT_SECONDS: int = Field(default=30, ge=1, le=300)
    FEDAPAY_SIGNATURE_TOLERANCE_SECONDS: int = Field(default=300, ge=1)
    PAYMENT_CURRENCY_ISO: str = Field(default="XOF", description="ISO code sent to the gateway")
    CURRENCY: str = Field(default="FCFA", description="Label used in notification messages")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"

    @validator("ENV")
    def check_env(cls, v):
        if v.lower() not in ENVIRONMENTS:
            raise ValueError(f"ENV must be one of: {', '.join(ENVIRONMENTS)}")
        return v.lower()

    @validator("LOG_LEVEL")
    def check_log_level(cls, v):
        if v.upper() not in LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of: {', '.join(LOG_LEVELS)}")
        return v.upper()

    @validator("DATABASE_URL")
    def check_database_url(cls, v):
        if not v.startswith(DATABASE_SCHEMES):
            raise ValueError(f"DATABASE_URL must start with one of: {', '.join(DATABASE_SCHEMES)}")
        return v

    @property
    def is_development(self) -> bool:
        """dev and test share create_all on startup and slow-query logging"""
        return self.ENV in ("dev", "development", "test")

    @property
    def webhook_signature_required(self) -> bool:
        return bool(self.FEDAPAY_WEBHOOK_SECRET)

    @property
    def cors_origins(self) -> List[str]:
        return _split_csv(self.CORS_ORIGINS)

    @property
    def cors_allow_headers(self) -> List[str]:
        return _split_csv(self.CORS_ALLOW_HEADERS)

    def cors_headers(self, origin: Optional[str] = None) -> dict:
        """
        Headers attached to every response, preflight included.

        Access-Control-Allow-Origin holds a single value: "*" when every origin
        is allowed, otherwise the request's Origin if it is listed. An unlisted
        origin gets no Allow-Origin header at all.
        """
        headers = {"Access-Control-Allow-Headers": ", ".join(self.cors_allow_headers)}
        if "*" in self.cors_origins:
            headers["Access-Control-Allow-Origin"] = "*"
            return headers

        headers["Vary"] = "Origin"
        if origin and origin in self.cors_origins:
            headers["Access-Control-Allow-Origin"] = origin
        return headers


try:
    settings = Settings()
except Exception as e:
    print(f"Configuration error: {e}")
    print("Check DATABASE_URL and JWT_SECRET in your environment or .env file")
    raise


__all__ = ["settings", "Settings"]
