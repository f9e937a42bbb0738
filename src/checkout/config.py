"""Runtime settings for the checkout context.

All values come from environment variables so the same build runs against
the fake gateway in development/test and against Airwallex in production.
"""

import os
from dataclasses import dataclass
from decimal import Decimal

DEFAULT_CURRENCY = "CNY"
DEFAULT_SHIPPING_FEE = "15.00"
DEFAULT_FREE_SHIPPING_THRESHOLD = "500.00"
DEFAULT_AIRWALLEX_BASE_URL = "https://api.airwallex.com"


@dataclass(frozen=True)
class Settings:
    environment: str
    currency: str
    shipping_fee: Decimal
    free_shipping_threshold: Decimal
    airwallex_base_url: str
    airwallex_client_id: str
    airwallex_api_key: str
    webhook_secret: str
    connect_timeout: float
    read_timeout: float

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def has_gateway_credentials(self) -> bool:
        return bool(self.airwallex_client_id and self.airwallex_api_key)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            environment=(os.getenv("PROTEAN_ENV") or "development").lower(),
            currency=os.getenv("CHECKOUT_CURRENCY", DEFAULT_CURRENCY),
            shipping_fee=Decimal(os.getenv("CHECKOUT_SHIPPING_FEE", DEFAULT_SHIPPING_FEE)),
            free_shipping_threshold=Decimal(
                os.getenv("CHECKOUT_FREE_SHIPPING_THRESHOLD", DEFAULT_FREE_SHIPPING_THRESHOLD)
            ),
            airwallex_base_url=os.getenv("AIRWALLEX_BASE_URL", DEFAULT_AIRWALLEX_BASE_URL).rstrip("/"),
            airwallex_client_id=os.getenv("AIRWALLEX_CLIENT_ID", ""),
            airwallex_api_key=os.getenv("AIRWALLEX_API_KEY", ""),
            webhook_secret=os.getenv("AIRWALLEX_WEBHOOK_SECRET", ""),
            connect_timeout=float(os.getenv("AIRWALLEX_CONNECT_TIMEOUT", "3.05")),
            read_timeout=float(os.getenv("AIRWALLEX_READ_TIMEOUT", "10")),
        )


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return the process-wide settings, loading them on first use."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def reset_settings() -> None:
    """Drop cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None
