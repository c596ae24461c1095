"""Main entry point for the portfolio dashboard."""

import asyncio
import logging
import sys
from datetime import datetime, timezone

import uvicorn
from dotenv import load_dotenv

from engine.domain.models import Position
from engine.domain.parsing import parse_portfolio_text
from engine.gateway import MarketDataGateway
from engine.jobs.scheduler import RefreshScheduler
from engine.services.market_data import MarketDataService
from engine.services.portfolio_service import PortfolioService
from engine.store import InMemoryPositionStore, PositionStore

from . import http_client
from .cache import InMemoryCache
from .config import Config
from .providers.polygon import PolygonGateway
from .providers.rate_limiter import RateLimiter
from .providers.yahoo import YahooGateway
from .web_api import configure_api_dependencies, web_api

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        format=LOG_FORMAT,
        level=getattr(logging, level, logging.INFO),
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    # httpx logs every request URL at INFO, including the apiKey query parameter
    logging.getLogger("httpx").setLevel(logging.WARNING)


def build_gateway(config: Config) -> MarketDataGateway:
    """Polygon when a key is configured, Yahoo Finance otherwise."""
    cache = InMemoryCache(default_ttl=config.bars_cache_ttl)
    ttls = dict(
        snapshot_ttl=config.snapshot_cache_ttl,
        bars_ttl=config.bars_cache_ttl,
        financials_ttl=config.financials_cache_ttl,
        ticker_name_ttl=config.ticker_name_cache_ttl,
    )
    if config.uses_polygon:
        logger.info("Using Polygon.io market data (rpm=%d)", config.polygon_rpm)
        return PolygonGateway(
            api_key=config.polygon_api_key,
            cache=cache,
            rate_limiter=RateLimiter(rpm=config.polygon_rpm),
            **ttls,
        )

    logger.warning("POLYGON_API_KEY not set, falling back to Yahoo Finance")
    return YahooGateway(cache=cache, max_concurrent=config.max_concurrent_requests, **ttls)


def seed_positions(store: PositionStore, config: Config) -> int:
    """Load DEFAULT_PORTFOLIO into an empty store."""
    if not config.default_portfolio or store.list(config.default_user_id):
        return 0

    entries = parse_portfolio_text(config.default_portfolio)
    for entry in entries:
        store.insert(
            config.default_user_id,
            Position(
                id=store.new_id(),
                symbol=entry.symbol,
                shares=entry.shares,
                avg_price=entry.avg_price,
            ),
        )
    logger.info("Seeded %d positions from DEFAULT_PORTFOLIO", len(entries))
    return len(entries)


async def main() -> None:
    """Main application entry point."""
    load_dotenv()
    config = Config.from_env()
    setup_logging(config.log_level)

    http_client.configure(
        timeout=config.http_timeout,
        retries=config.max_retries,
        backoff_factor=config.retry_backoff_factor,
        max_concurrent=config.max_concurrent_requests,
    )

    gateway = build_gateway(config)
    store = InMemoryPositionStore()
    seed_positions(store, config)

    service = PortfolioService(store, MarketDataService(gateway), user_id=config.default_user_id)
    scheduler = RefreshScheduler(service, interval_seconds=config.refresh_interval_seconds)
    configure_api_dependencies(service, scheduler)

    server = uvicorn.Server(
        uvicorn.Config(web_api, host=config.web_host, port=config.web_port, log_level="warning")
    )

    logger.info("Starting dashboard at %s", datetime.now(timezone.utc).isoformat())
    logger.info(
        "Configuration: refresh_interval=%ds, max_concurrent_requests=%d, http_timeout=%d",
        config.refresh_interval_seconds,
        config.max_concurrent_requests,
        config.http_timeout,
    )

    scheduler.start()
    try:
        await server.serve()
    finally:
        logger.info("Stopping application...")
        await scheduler.stop()
        await gateway.close()
        await http_client.close_http_client()
        logger.info("Shutdown complete")


def run() -> None:
    """Synchronous entry point for running the dashboard."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Dashboard stopped by user")
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    run()
