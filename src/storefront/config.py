"""Runtime settings for storefront, read from the environment."""

from functools import lru_cache
from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_default_data_dir = Path(__file__).parent.parent.parent / "data"

DEFAULT_SHIPPING_RATES = {
    "standard": 100.0,
    "express": 200.0,
    "overnight": 500.0,
}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Document store location
    data_dir: Path = _default_data_dir

    environment: str = Field(
        default="development",
        validation_alias=AliasChoices("ENVIRONMENT", "NODE_ENV"),
    )
    log_level: str = "INFO"
    log_json: bool = False
    cors_origins: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
    ]

    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"

    stripe_secret_key: str = ""
    stripe_publishable_key: str = ""
    stripe_webhook_secret: str = ""
    stripe_currency: str = "inr"

    razorpay_key_id: str = ""
    razorpay_key_secret: str = ""
    razorpay_webhook_secret: str = ""

    merchant_upi_id: str = ""
    merchant_name: str = "Storefront"
    upi_requires_admin_approval: bool = True

    frontend_url: str = "http://localhost:3000"

    tax_rate: float = 0.18
    shipping_rates: dict[str, float] = Field(
        default_factory=lambda: dict(DEFAULT_SHIPPING_RATES)
    )

    gateway_timeout: float = 10.0
    gateway_max_retries: int = 2

    subscription_grace_days: int = 3

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    """Get the process-wide settings."""
    return Settings()
