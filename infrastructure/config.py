"""Application settings loaded from the environment"""
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime settings; every field can be overridden by an env var of the same name"""

    # JWT
    SECRET_KEY: str = "your-secret-key-keep-it-secret"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Midtrans
    MIDTRANS_SERVER_KEY: str = "SB-Mid-server-dev-key"
    MIDTRANS_CLIENT_KEY: str = "SB-Mid-client-dev-key"
    MIDTRANS_IS_PRODUCTION: bool = False
    MIDTRANS_TIMEOUT_SECONDS: float = 10.0

    # Booking / payment rules
    DEPOSIT_PAYMENT_EXPIRY_HOURS: int = 24
    FULL_PAYMENT_EXPIRY_HOURS: int = 1
    EXTENSION_DEPOSIT_PERCENTAGE: int = 30
    BOOKING_CODE_MAX_ATTEMPTS: int = 5

    DEFAULT_LOCALE: str = "id"
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def midtrans_snap_url(self) -> str:
        if self.MIDTRANS_IS_PRODUCTION:
            return "https://app.midtrans.com/snap/v1/transactions"
        return "https://app.sandbox.midtrans.com/snap/v1/transactions"

    @property
    def midtrans_api_url(self) -> str:
        if self.MIDTRANS_IS_PRODUCTION:
            return "https://api.midtrans.com/v2"
        return "https://api.sandbox.midtrans.com/v2"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
