"""Web API for the portfolio dashboard - FastAPI JSON endpoints."""

import logging
import os
from typing import Optional, Union

from fastapi import BackgroundTasks, FastAPI, Header, HTTPException, status
from pydantic import BaseModel

from engine.domain.parsing import PositionValidationError
from engine.domain.view import FILTER_ALL, SORT_ALPHABETICAL
from engine.jobs.scheduler import RefreshScheduler
from engine.services.portfolio_service import PortfolioService, PositionNotFoundError

logger = logging.getLogger(__name__)

# Injected by the entry point (see configure_api_dependencies)
_service: Optional[PortfolioService] = None
_scheduler: Optional[RefreshScheduler] = None


def configure_api_dependencies(
    service: PortfolioService,
    scheduler: Optional[RefreshScheduler] = None,
) -> None:
    """Configure API with the portfolio service and optional scheduler."""
    global _service, _scheduler
    _service = service
    _scheduler = scheduler


# ============== PYDANTIC MODELS ==============

Number = Union[float, str]


class PositionCreate(BaseModel):
    symbol: str
    shares: Number
    avg_price: Number
    name: Optional[str] = None


class PositionUpdate(BaseModel):
    shares: Optional[Number] = None
    avg_price: Optional[Number] = None
    name: Optional[str] = None


# ============== FASTAPI APP ==============

web_api = FastAPI(title="Portfolio Signals API")


def _require_api_auth(x_api_key: Optional[str]) -> None:
    """Enforce API key auth when WEB_API_TOKEN is configured."""
    token = os.getenv("WEB_API_TOKEN", "").strip()
    if not token:
        return
    if not x_api_key or x_api_key != token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )


def _get_service() -> PortfolioService:
    if _service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Portfolio service not configured",
        )
    return _service


async def _refresh_now():
    if _scheduler is not None:
        return await _scheduler.trigger()
    return await _get_service().refresh()


async def _refresh_in_background() -> None:
    try:
        await _refresh_now()
    except Exception as e:
        logger.error("Background refresh failed: %s", e)


@web_api.get("/healthz")
async def healthz():
    """Unauthenticated health probe endpoint for external pingers."""
    return {"status": "ok"}


@web_api.get("/api/portfolio")
async def api_portfolio(
    sort: str = SORT_ALPHABETICAL,
    filter: str = FILTER_ALL,
    x_api_key: Optional[str] = Header(default=None, alias="X-API-Key"),
):
    """Holdings (sorted and filtered), totals and the time of the last refresh."""
    _require_api_auth(x_api_key)
    service = _get_service()
    try:
        holdings = service.view(sort, filter)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    refreshed_at = service.state.refreshed_at
    return {
        "holdings": [h.to_dict() for h in holdings],
        "totals": service.totals().to_dict(),
        "refreshed_at": refreshed_at.isoformat() if refreshed_at else None,
    }


@web_api.post("/api/refresh")
async def api_refresh(x_api_key: Optional[str] = Header(default=None, alias="X-API-Key")):
    _require_api_auth(x_api_key)
    state = await _refresh_now()
    return state.to_dict()


@web_api.get("/api/status")
async def api_status(x_api_key: Optional[str] = Header(default=None, alias="X-API-Key")):
    """Gateway, rate limiter and cache stats plus scheduler state."""
    _require_api_auth(x_api_key)
    service = _get_service()
    refreshed_at = service.state.refreshed_at
    return {
        "gateway": service.market_data.stats(),
        "scheduler_running": _scheduler.running if _scheduler is not None else False,
        "refreshed_at": refreshed_at.isoformat() if refreshed_at else None,
    }


@web_api.get("/api/chart/{symbol}")
async def api_chart(
    symbol: str,
    timeframe: str = "3M",
    x_api_key: Optional[str] = Header(default=None, alias="X-API-Key"),
):
    _require_api_auth(x_api_key)
    try:
        series = await _get_service().chart(symbol, timeframe)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return series.to_dict()


@web_api.get("/api/indexes")
async def api_indexes(x_api_key: Optional[str] = Header(default=None, alias="X-API-Key")):
    _require_api_auth(x_api_key)
    indexes = await _get_service().market_indexes()
    return {"indexes": [i.to_dict() for i in indexes]}


@web_api.post("/api/positions", status_code=status.HTTP_201_CREATED)
async def api_add_position(
    body: PositionCreate,
    background_tasks: BackgroundTasks,
    x_api_key: Optional[str] = Header(default=None, alias="X-API-Key"),
):
    """Add a position, then refresh in the background so it gets a signal."""
    _require_api_auth(x_api_key)
    try:
        position = await _get_service().add_position(body.symbol, body.shares, body.avg_price, body.name)
    except PositionValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    background_tasks.add_task(_refresh_in_background)
    return position.to_dict()


@web_api.patch("/api/positions/{position_id}")
async def api_update_position(
    position_id: str,
    body: PositionUpdate,
    x_api_key: Optional[str] = Header(default=None, alias="X-API-Key"),
):
    _require_api_auth(x_api_key)
    try:
        position = _get_service().update_position(
            position_id,
            shares=body.shares,
            avg_price=body.avg_price,
            name=body.name,
        )
    except PositionNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Position not found")
    except PositionValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return position.to_dict()


@web_api.delete("/api/positions/{position_id}", status_code=status.HTTP_204_NO_CONTENT)
async def api_delete_position(
    position_id: str,
    x_api_key: Optional[str] = Header(default=None, alias="X-API-Key"),
):
    _require_api_auth(x_api_key)
    try:
        _get_service().remove_position(position_id)
    except PositionNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Position not found")
    return None
