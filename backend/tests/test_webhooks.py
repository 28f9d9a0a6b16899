"""Tests for the workflow engine webhook endpoints."""
from decimal import Decimal

import pytest
from httpx import AsyncClient, ASGITransport

from app import config
from app.dependencies import get_storage
from app.entities import ScrapeStatus
from app.main import app

API_KEY = "test-ingest-key"
HEADERS = {"Authorization": f"Bearer {API_KEY}"}

BATCH = {
    "propertyId": "prop-1",
    "competitorId": "comp-a",
    "roomTypeId": "rt-1",
    "prices": [
        {"targetDate": "2024-06-01T00:00:00Z", "price": 120.50, "currency": "EUR", "available": True},
        {"targetDate": "2024-06-02T00:00:00Z", "price": 130, "currency": "EUR", "available": False},
    ],
    "metadata": {"workflowId": "wf-1"},
}


@pytest.fixture(autouse=True)
def webhook_env(monkeypatch, storage):
    monkeypatch.setattr(config, "INGEST_API_KEY", API_KEY)
    monkeypatch.setattr(config, "INGEST_WEBHOOK_SECRET", "")
    app.dependency_overrides[get_storage] = lambda: storage
    try:
        yield
    finally:
        app.dependency_overrides.pop(get_storage, None)


def _client():
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_webhook_unauthorized():
    """Requests without the API key are rejected."""
    async with _client() as client:
        response = await client.post("/webhook/price-ingest", json=BATCH)
    assert response.status_code == 401
    assert response.json()["detail"] == "Unauthorized - Invalid API key"


@pytest.mark.asyncio
async def test_webhook_wrong_key():
    async with _client() as client:
        response = await client.post(
            "/webhook/price-ingest", json=BATCH, headers={"Authorization": "Bearer nope"},
        )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_webhook_secret_enforced_when_configured(monkeypatch, hotel):
    monkeypatch.setattr(config, "INGEST_WEBHOOK_SECRET", "s3cret")
    async with _client() as client:
        missing = await client.post("/webhook/price-ingest", json=BATCH, headers=HEADERS)
        ok = await client.post(
            "/webhook/price-ingest", json=BATCH, headers={**HEADERS, "x-webhook-secret": "s3cret"},
        )
    assert missing.status_code == 401
    assert missing.json()["detail"] == "Invalid webhook secret"
    assert ok.status_code == 200


@pytest.mark.asyncio
async def test_price_ingest_saves_batch(storage, hotel):
    async with _client() as client:
        response = await client.post("/webhook/price-ingest", json=BATCH, headers=HEADERS)

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["statistics"] == {"pricesReceived": 2, "pricesSaved": 2, "duplicatesSkipped": 0}
    assert data["competitor"] == {"id": "comp-a", "name": "Alpha Inn"}
    assert data["roomType"] == {"id": "rt-1", "name": "Double"}
    assert storage.prices[0].price == Decimal("120.5")
    assert storage.prices[1].available is False
    assert storage.scrape_events[0].status == ScrapeStatus.SUCCESS
    assert storage.scrape_events[0].payload["propertyId"] == "prop-1"


@pytest.mark.asyncio
async def test_price_ingest_twice_skips_duplicates(hotel):
    async with _client() as client:
        await client.post("/webhook/price-ingest", json=BATCH, headers=HEADERS)
        response = await client.post("/webhook/price-ingest", json=BATCH, headers=HEADERS)
    assert response.json()["statistics"] == {"pricesReceived": 2, "pricesSaved": 0, "duplicatesSkipped": 2}


@pytest.mark.asyncio
async def test_price_ingest_unknown_room_type(storage, hotel):
    async with _client() as client:
        response = await client.post(
            "/webhook/price-ingest", json={**BATCH, "roomTypeId": "rt-x"}, headers=HEADERS,
        )
    assert response.status_code == 400
    body = response.json()
    assert body["detail"] == "Property, competitor or room type not found"
    assert body["errors"]["roomTypeFound"] is False
    assert storage.prices == []


@pytest.mark.asyncio
async def test_price_ingest_negative_price_is_400(hotel):
    bad = {**BATCH, "prices": [{"targetDate": "2024-06-01T00:00:00Z", "price": -1}]}
    async with _client() as client:
        response = await client.post("/webhook/price-ingest", json=bad, headers=HEADERS)
    assert response.status_code == 400
    assert "prices.0.price" in response.json()["errors"]


@pytest.mark.asyncio
async def test_price_ingest_sub_cent_price_is_400(storage, hotel):
    bad = {**BATCH, "prices": [{"targetDate": "2024-06-01T00:00:00Z", "price": "120.505"}]}
    async with _client() as client:
        response = await client.post("/webhook/price-ingest", json=bad, headers=HEADERS)
    assert response.status_code == 400
    assert "prices.0.price" in response.json()["errors"]
    assert storage.prices == []


@pytest.mark.asyncio
async def test_price_ingest_price_beyond_column_range_is_400(storage, hotel):
    bad = {**BATCH, "prices": [{"targetDate": "2024-06-01T00:00:00Z", "price": "12345678901.00"}]}
    async with _client() as client:
        response = await client.post("/webhook/price-ingest", json=bad, headers=HEADERS)
    assert response.status_code == 400
    assert storage.prices == []


@pytest.mark.asyncio
async def test_price_ingest_storage_failure_is_500(storage, hotel):
    storage.fail_inserts = True
    async with _client() as client:
        response = await client.post("/webhook/price-ingest", json=BATCH, headers=HEADERS)
    assert response.status_code == 500
    assert storage.scrape_events[0].status == ScrapeStatus.ERROR


@pytest.mark.asyncio
async def test_execution_log(storage, hotel):
    body = {
        "workflowId": "wf-1",
        "workflowName": "Nightly scrape",
        "executionId": "exec-1",
        "status": "SUCCESS",
        "startTime": "2024-06-01T02:00:00Z",
        "endTime": "2024-06-01T02:03:00Z",
        "duration": 180,
        "pricesScraped": 8,
        "pricesSaved": 6,
        "processedProperties": ["prop-1"],
    }
    async with _client() as client:
        response = await client.post("/webhook/execution-log", json=body, headers=HEADERS)

    assert response.status_code == 200
    data = response.json()
    assert data["logId"] == storage.scrape_events[0].id
    assert data["statistics"]["successRate"] == 75.0


@pytest.mark.asyncio
async def test_active_properties(storage, hotel):
    storage.add_property("prop-2", owner_id="owner-1", name="No Competitors")
    storage.add_competitor("comp-off", "prop-2", active=False)
    async with _client() as client:
        response = await client.get("/webhook/active-properties", headers=HEADERS)

    assert response.status_code == 200
    data = response.json()
    assert data["count"] == 1
    target = data["properties"][0]
    assert target["id"] == "prop-1"
    assert target["timezone"] == "Europe/Rome"
    assert target["frequencyCron"] == "0 */2 * * *"
    assert target["lookaheadDays"] == 30
    assert [c["id"] for c in target["competitors"]] == ["comp-a", "comp-b"]
    assert target["roomTypes"][0]["code"] == "DBL"
