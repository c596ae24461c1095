"""Configuration management for the portfolio dashboard."""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

POLYGON_BASE_URL = "https://api.polygon.io"

# Load environment variables
load_dotenv()


@dataclass
class Config:
    """Application configuration loaded from environment variables."""

    # Polygon.io (optional; Yahoo Finance is used without a key)
    polygon_api_key: Optional[str] = None
    polygon_rpm: int = 5  # Free tier: 5 requests per minute

    # Refresh cycle
    refresh_interval_seconds: int = 300  # 5 minutes

    # Cache TTLs (seconds)
    snapshot_cache_ttl: int = 60
    bars_cache_ttl: int = 600  # 10 minutes
    financials_cache_ttl: int = 86400  # 24 hours
    ticker_name_cache_ttl: int = 86400  # 24 hours

    # Network settings
    http_timeout: int = 30
    max_concurrent_requests: int = 5
    max_retries: int = 3
    retry_backoff_factor: float = 0.5

    # Web API
    web_api_token: Optional[str] = None
    web_host: str = "0.0.0.0"
    web_port: int = 8000

    # Portfolio
    default_user_id: str = "local"
    default_portfolio: Optional[str] = None

    log_level: str = "INFO"

    @property
    def uses_polygon(self) -> bool:
        return bool(self.polygon_api_key)

    @classmethod
    def from_env(cls) -> "Config":
        """Create configuration from environment variables."""
        return cls(
            polygon_api_key=os.getenv("POLYGON_API_KEY", "").strip() or None,
            polygon_rpm=int(os.getenv("POLYGON_RPM", "5")),
            refresh_interval_seconds=int(os.getenv("REFRESH_INTERVAL_SECONDS", "300")),
            snapshot_cache_ttl=int(os.getenv("SNAPSHOT_CACHE_TTL", "60")),
            bars_cache_ttl=int(os.getenv("BARS_CACHE_TTL", "600")),
            financials_cache_ttl=int(os.getenv("FINANCIALS_CACHE_TTL", "86400")),
            ticker_name_cache_ttl=int(os.getenv("TICKER_NAME_CACHE_TTL", "86400")),
            http_timeout=int(os.getenv("HTTP_TIMEOUT", "30")),
            max_concurrent_requests=int(os.getenv("MAX_CONCURRENT_REQUESTS", "5")),
            max_retries=int(os.getenv("MAX_RETRIES", "3")),
            retry_backoff_factor=float(os.getenv("RETRY_BACKOFF_FACTOR", "0.5")),
            web_api_token=os.getenv("WEB_API_TOKEN", "").strip() or None,
            web_host=os.getenv("WEB_HOST", "0.0.0.0").strip() or "0.0.0.0",
            web_port=int(os.getenv("PORT", "8000")),
            default_user_id=os.getenv("DEFAULT_USER_ID", "local").strip() or "local",
            default_portfolio=os.getenv("DEFAULT_PORTFOLIO", "").strip() or None,
            log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO",
        )