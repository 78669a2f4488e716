
from decimal import Decimal
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    PROJECT_NAME: str = "Cinebook API"
    API_V1_STR: str = "/api/v1"
    # Diagnostic mode: internal error messages are returned to the caller
    DEBUG: bool = False

    SECRET_KEY: str = "changeme"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 8

    # Database
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "12345"
    POSTGRES_DB: str = "cinebook_db"
    POSTGRES_PORT: int = 5432
    DATABASE_URL: str = ""

    # Payment provider (Stripe hosted checkout)
    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_WEBHOOK_SECRET: Optional[str] = None
    STRIPE_TIMEOUT_SECONDS: int = 10
    STRIPE_MAX_NETWORK_RETRIES: int = 2
    PAYMENT_CURRENCY: str = "inr"
    CHECKOUT_SUCCESS_URL: str = "http://localhost:3000/booking/success?session_id={CHECKOUT_SESSION_ID}"
    CHECKOUT_CANCEL_URL: str = "http://localhost:3000/booking/cancel"
    CHECKOUT_SESSION_MINUTES: int = 31   # provider minimum is 30

    # Booking lifecycle
    PENDING_HOLD_MINUTES: int = 35
    PAYMENT_WINDOW_MINUTES: int = 60
    SWEEPER_INTERVAL_SECONDS: int = 60
    CRON_SECRET: Optional[str] = None
    MAX_SEATS_PER_BOOKING: int = 10

    # Showtime materialization
    SHOWTIME_DAYS_AHEAD: int = 7
    MAX_SHOWTIME_RANGE_DAYS: int = 31
    DEFAULT_SEAT_PRICE: Decimal = Decimal("150.00")

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    def assemble_db_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"


settings = Settings()
settings.DATABASE_URL = settings.assemble_db_url()
