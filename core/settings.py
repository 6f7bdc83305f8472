import os
from typing import Literal

from dotenv import load_dotenv
from pydantic import ConfigDict
from pydantic_settings import BaseSettings

# Load .env file automatically
load_dotenv()


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str
    DATABASE_POOL_SIZE: int = 10
    DATABASE_MAX_OVERFLOW: int = 20
    DATABASE_POOL_TIMEOUT: int = 30
    DATABASE_POOL_RECYCLE: int = 3600

    # Stripe
    STRIPE_SECRET_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    # Maximum age in seconds of a signed webhook timestamp; 0 disables the check
    STRIPE_WEBHOOK_TOLERANCE: int = 300
    STRIPE_MAX_NETWORK_RETRIES: int = 2
    STRIPE_PRICE_STARTER: str = ""
    STRIPE_PRICE_PRO: str = ""

    # Checkout redirect targets
    CLIENT_URL: str = "http://localhost:3000"
    BASE_URL: str = "http://localhost:3000"

    # App settings
    APP_NAME: str = "Rent Control Backend"
    DEBUG: bool = False
    ENVIRONMENT: Literal["development", "test", "production"] = "development"

    # Observability (Optional)
    OTEL_EXPORTER_OTLP_ENDPOINT: str = "http://localhost:4317"
    OTEL_SERVICE_NAME: str = "rentcontrol-billing"

    model_config = ConfigDict(env_file=".env", case_sensitive=True)

    def __init__(self, **kwargs):
        # Check for DATABASE_URL before calling parent constructor
        if not kwargs.get("DATABASE_URL") and not os.getenv("DATABASE_URL"):
            raise RuntimeError(
                "DATABASE_URL not set; create .env or export the variable"
            )
        super().__init__(**kwargs)

    @property
    def price_map(self) -> dict[str, str]:
        """Subscription plan name to Stripe price id."""
        return {
            "starter": self.STRIPE_PRICE_STARTER,
            "pro": self.STRIPE_PRICE_PRO,
        }
