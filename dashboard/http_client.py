"""Shared HTTP client: concurrency cap, retries with backoff, error mapping."""

import asyncio
import logging
import random
from typing import Optional

import httpx

from engine.gateway import MarketDataError, RateLimitError

logger = logging.getLogger(__name__)

# Limits concurrent outbound requests; resized by configure()
HTTP_SEMAPHORE = asyncio.Semaphore(5)

# Global HTTP client (for connection pooling)
_http_client: Optional[httpx.AsyncClient] = None
_timeout: float = 30
_retries: int = 3
_backoff_factor: float = 0.5


def configure(
    timeout: float = 30,
    retries: int = 3,
    backoff_factor: float = 0.5,
    max_concurrent: int = 5,
) -> None:
    """Apply network settings; call before the first request."""
    global HTTP_SEMAPHORE, _timeout, _retries, _backoff_factor
    HTTP_SEMAPHORE = asyncio.Semaphore(max(1, max_concurrent))
    _timeout = timeout
    _retries = max(1, retries)
    _backoff_factor = backoff_factor


def get_http_client() -> httpx.AsyncClient:
    """Get or create global HTTP client."""
    global _http_client
    if _http_client is None:
        _http_client = httpx.AsyncClient(timeout=_timeout)
    return _http_client


async def close_http_client() -> None:
    """Close global HTTP client."""
    global _http_client
    if _http_client is not None:
        await _http_client.aclose()
        _http_client = None


def _backoff(attempt: int) -> float:
    return _backoff_factor * (2 ** attempt) + random.uniform(0, 0.2)


async def http_get(
    url: str,
    params: Optional[dict] = None,
    headers: Optional[dict] = None,
    timeout: Optional[float] = None,
    retries: Optional[int] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> httpx.Response:
    """
    GET request with semaphore + exponential backoff retry.

    A 429 that survives all retries becomes RateLimitError; any other
    persistent failure becomes MarketDataError.

    Returns:
        httpx.Response with a 2xx status
    """
    client = client or get_http_client()
    retries = retries or _retries
    timeout = timeout or _timeout
    last_error: Optional[str] = None

    async with HTTP_SEMAPHORE:
        for attempt in range(retries):
            try:
                logger.debug("HTTP GET attempt %d/%d: %s", attempt + 1, retries, url)
                response = await client.get(url, params=params, headers=headers, timeout=timeout)
            except (httpx.TimeoutException, httpx.ConnectError) as exc:
                last_error = str(exc) or exc.__class__.__name__
                if attempt < retries - 1:
                    backoff = _backoff(attempt)
                    logger.warning(
                        "HTTP error on attempt %d: %s. Retrying in %.2f seconds...",
                        attempt + 1,
                        last_error,
                        backoff,
                    )
                    await asyncio.sleep(backoff)
                    continue
                logger.error("HTTP GET failed after %d attempts: %s", retries, last_error)
                raise MarketDataError(f"Request failed: {last_error}") from exc
            except httpx.HTTPError as exc:
                logger.error("HTTP error: %s", exc)
                raise MarketDataError(f"Request failed: {exc}") from exc

            if response.status_code == 429:
                if attempt < retries - 1:
                    wait_time = _retry_after(response)
                    logger.warning("Rate limited (429). Retrying after %.1f seconds...", wait_time)
                    await asyncio.sleep(wait_time)
                    continue
                raise RateLimitError("Upstream rate limit reached")

            if response.status_code >= 500:
                last_error = f"HTTP {response.status_code}"
                if attempt < retries - 1:
                    backoff = _backoff(attempt)
                    logger.warning(
                        "Server error (%d). Retrying in %.2f seconds...",
                        response.status_code,
                        backoff,
                    )
                    await asyncio.sleep(backoff)
                    continue
                raise MarketDataError(f"Server error: {last_error}")

            if response.status_code >= 400:
                # Client errors are not retried
                raise MarketDataError(f"HTTP {response.status_code} for {url}")

            logger.debug("HTTP GET success: %s", url)
            return response

    raise MarketDataError(f"HTTP GET failed: {last_error or 'max retries exceeded'}")


def _retry_after(response: httpx.Response) -> float:
    try:
        return float(response.headers.get("Retry-After", "1"))
    except ValueError:
        return 1.0
