from datetime import date, datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from dashboard import web_api as web_api_module
from dashboard.web_api import configure_api_dependencies, web_api
from engine.domain.models import (
    ChartSeries,
    MarketIndex,
    PortfolioState,
    PortfolioTotals,
    Position,
)
from engine.domain.parsing import PositionValidationError
from engine.services.portfolio_service import PositionNotFoundError


@pytest.fixture
def service():
    svc = MagicMock()
    svc.view.return_value = []
    svc.totals.return_value = PortfolioTotals()
    svc.state = PortfolioState(refreshed_at=datetime(2024, 6, 28, 12, 0, tzinfo=timezone.utc))
    svc.refresh = AsyncMock(return_value=PortfolioState())
    svc.chart = AsyncMock(
        return_value=ChartSeries(symbol="AAPL", timeframe="1M", display_from=date(2024, 5, 28))
    )
    svc.market_indexes = AsyncMock(
        return_value=[MarketIndex(symbol="SPY", name="S&P 500", price=540.0, change=1.0, change_percent=0.2)]
    )
    svc.add_position = AsyncMock(
        return_value=Position(id="p1", symbol="AAPL", shares=10, avg_price=150, name="Apple Inc.")
    )
    svc.update_position.return_value = Position(id="p1", symbol="AAPL", shares=12, avg_price=150)
    configure_api_dependencies(svc)
    yield svc
    configure_api_dependencies(None)


@pytest.fixture
def client(monkeypatch, service):
    monkeypatch.delenv("WEB_API_TOKEN", raising=False)
    return TestClient(web_api)


def test_healthz_is_public(monkeypatch):
    monkeypatch.setenv("WEB_API_TOKEN", "secret")
    response = TestClient(web_api).get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_api_key_required_when_token_set(monkeypatch, service):
    monkeypatch.setenv("WEB_API_TOKEN", "secret")
    client = TestClient(web_api)

    assert client.get("/api/portfolio").status_code == 401
    assert client.get("/api/portfolio", headers={"X-API-Key": "wrong"}).status_code == 401
    assert client.get("/api/portfolio", headers={"X-API-Key": "secret"}).status_code == 200


def test_portfolio_passes_sort_and_filter(client, service):
    response = client.get("/api/portfolio", params={"sort": "pl", "filter": "BUY"})

    assert response.status_code == 200
    payload = response.json()
    assert payload["holdings"] == []
    assert payload["totals"]["total_value"] == 0
    assert payload["refreshed_at"].startswith("2024-06-28T12:00:00")
    service.view.assert_called_once_with("pl", "BUY")


def test_portfolio_bad_sort_is_400(client, service):
    service.view.side_effect = ValueError("Unknown sort key: 'volume'")
    assert client.get("/api/portfolio", params={"sort": "volume"}).status_code == 400


def test_refresh(client, service):
    response = client.post("/api/refresh")
    assert response.status_code == 200
    service.refresh.assert_awaited_once()


def test_status(client, service):
    service.market_data.stats.return_value = {"provider": "Polygon", "cache": {"size": 3}}

    response = client.get("/api/status")

    assert response.status_code == 200
    payload = response.json()
    assert payload["gateway"]["provider"] == "Polygon"
    assert payload["scheduler_running"] is False
    assert payload["refreshed_at"].startswith("2024-06-28T12:00:00")


def test_chart(client, service):
    response = client.get("/api/chart/AAPL", params={"timeframe": "1M"})
    assert response.status_code == 200
    assert response.json()["display_from"] == "2024-05-28"
    service.chart.assert_awaited_once_with("AAPL", "1M")


def test_chart_bad_timeframe(client, service):
    service.chart.side_effect = ValueError("Unknown chart timeframe: '10Y'")
    assert client.get("/api/chart/AAPL", params={"timeframe": "10Y"}).status_code == 400


def test_indexes(client):
    response = client.get("/api/indexes")
    assert response.json()["indexes"][0]["name"] == "S&P 500"


def test_add_position(client, service):
    response = client.post("/api/positions", json={"symbol": "aapl", "shares": 10, "avg_price": "150"})

    assert response.status_code == 201
    assert response.json()["name"] == "Apple Inc."
    service.add_position.assert_awaited_once_with("aapl", 10, "150", None)
    # Background refresh runs after the response
    service.refresh.assert_awaited()


def test_add_position_invalid(client, service):
    service.add_position.side_effect = PositionValidationError("Invalid stock symbol.")
    response = client.post("/api/positions", json={"symbol": "1234", "shares": 1, "avg_price": 1})
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid stock symbol."


def test_update_position(client, service):
    response = client.patch("/api/positions/p1", json={"shares": 12})
    assert response.status_code == 200
    assert response.json()["shares"] == 12
    service.update_position.assert_called_once_with("p1", shares=12, avg_price=None, name=None)


def test_update_unknown_position(client, service):
    service.update_position.side_effect = PositionNotFoundError("nope")
    assert client.patch("/api/positions/nope", json={"shares": 1}).status_code == 404


def test_delete_position(client, service):
    assert client.delete("/api/positions/p1").status_code == 204
    service.remove_position.side_effect = PositionNotFoundError("p1")
    assert client.delete("/api/positions/p1").status_code == 404


def test_unconfigured_service_is_503(monkeypatch):
    monkeypatch.delenv("WEB_API_TOKEN", raising=False)
    configure_api_dependencies(None)
    assert web_api_module._service is None
    assert TestClient(web_api).get("/api/portfolio").status_code == 503
