import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    """Runtime settings, read once from the environment."""
    database_url: str
    auth_url: str
    auth_api_key: str
    razorpay_key_id: str
    razorpay_key_secret: str
    razorpay_api_url: str
    currency: str
    allow_backorder: bool
    http_timeout_seconds: float
    rabbitmq_host: Optional[str]
    log_level: str


@lru_cache()
def get_settings() -> Settings:
    return Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///./checkout.db"),
        auth_url=os.getenv("AUTH_URL", "http://localhost:54321"),
        auth_api_key=os.getenv("AUTH_API_KEY", ""),
        razorpay_key_id=os.getenv("RAZORPAY_KEY_ID", ""),
        razorpay_key_secret=os.getenv("RAZORPAY_KEY_SECRET", ""),
        razorpay_api_url=os.getenv("RAZORPAY_API_URL", "https://api.razorpay.com/v1"),
        currency=os.getenv("CURRENCY", "INR"),
        allow_backorder=_flag("ALLOW_BACKORDER"),
        http_timeout_seconds=float(os.getenv("HTTP_TIMEOUT_SECONDS", "10")),
        # No host means events are not published.
        rabbitmq_host=os.getenv("RABBITMQ_HOST") or None,
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
