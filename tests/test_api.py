"""
tests/test_api.py

HTTP contract of the scraping, tracked URL and material price routers.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

from app.api.routers import material_prices_router, price_scraping_router, tracked_urls_router
from app.services.price_scraping_service import get_price_scraping_service
from db.session import get_db
from tests.conftest import FakeFetcher

URL = "https://shop.example.com/urun/alci"
PAGE = '<html><body><h1>Alçı</h1><span class="fiyat">2.450,50 TL</span></body></html>'


def _client(service, session_factory: sessionmaker[Session]) -> TestClient:
    app = FastAPI()
    app.include_router(price_scraping_router)
    app.include_router(tracked_urls_router)
    app.include_router(material_prices_router)

    def _get_db() -> Iterator[Session]:
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_price_scraping_service] = lambda: service
    return TestClient(app)


@pytest.fixture()
def client(make_service, session_factory) -> TestClient:
    return _client(make_service(), session_factory)


@pytest.fixture()
def tracked(client: TestClient) -> dict:
    response = client.post(
        "/tracked-urls",
        json={"url": URL, "hint": ".fiyat", "material_key": "alci-25kg", "price_multiplier": "1.2"},
    )
    assert response.status_code == 201
    return response.json()


class TestTrackedURLs:
    def test_create_and_get(self, client: TestClient, tracked: dict) -> None:
        assert tracked["interval_hours"] == 24
        assert tracked["next_due_at"] is None

        response = client.get(f"/tracked-urls/{tracked['id']}")

        assert response.status_code == 200
        assert response.json()["material_key"] == "alci-25kg"

    def test_create_validation(self, client: TestClient) -> None:
        bad_url = client.post("/tracked-urls", json={"url": "ftp://x", "hint": ".p", "material_key": "m"})
        bad_hint = client.post("/tracked-urls", json={"url": URL, "hint": "div[", "material_key": "m"})
        bad_interval = client.post(
            "/tracked-urls", json={"url": URL, "hint": ".p", "material_key": "m", "interval_hours": 0}
        )
        huge_interval = client.post(
            "/tracked-urls", json={"url": URL, "hint": ".p", "material_key": "m", "interval_hours": 2_000_000_000}
        )

        assert bad_url.status_code == 400
        assert bad_hint.status_code == 400
        assert bad_interval.status_code == 422
        assert huge_interval.status_code == 422

    def test_list_and_patch(self, client: TestClient, tracked: dict) -> None:
        patched = client.patch(f"/tracked-urls/{tracked['id']}", json={"is_active": False})

        assert patched.status_code == 200
        assert patched.json()["is_active"] is False
        assert client.get("/tracked-urls", params={"active_only": True}).json() == []
        assert len(client.get("/tracked-urls").json()) == 1

    def test_unknown_id_is_404(self, client: TestClient) -> None:
        missing = uuid.uuid4()

        assert client.get(f"/tracked-urls/{missing}").status_code == 404
        assert client.delete(f"/tracked-urls/{missing}").status_code == 404
        assert client.post(f"/tracked-urls/{missing}/run").status_code == 404

    def test_run_then_delete_conflicts(
        self, client: TestClient, tracked: dict, fetcher: FakeFetcher
    ) -> None:
        fetcher.pages[URL] = PAGE

        run = client.post(f"/tracked-urls/{tracked['id']}/run")

        assert run.status_code == 200
        body = run.json()
        assert body["success"] is True
        assert body["price"] == "2450.50"
        assert body["final_price"] == "2940.60"
        history = client.get(f"/tracked-urls/{tracked['id']}/history").json()
        assert [item["trigger"] for item in history] == ["manual"]
        assert client.delete(f"/tracked-urls/{tracked['id']}").status_code == 409

    def test_delete_without_history(self, client: TestClient, tracked: dict) -> None:
        assert client.delete(f"/tracked-urls/{tracked['id']}").status_code == 204
        assert client.get(f"/tracked-urls/{tracked['id']}").status_code == 404

    def test_schedule_now(self, client: TestClient, tracked: dict) -> None:
        response = client.post("/tracked-urls/schedule-now")

        assert response.status_code == 200
        assert response.json() == {"scheduled": 1}


class TestScraping:
    def test_price_then_cached(self, client: TestClient, fetcher: FakeFetcher) -> None:
        fetcher.pages[URL] = PAGE

        first = client.post("/scraping/price", json={"url": URL, "hint": ".fiyat"})
        second = client.post("/scraping/price", json={"url": URL, "hint": ".fiyat"})

        assert first.status_code == 200
        assert first.json()["price"] == "2450.50"
        assert first.json()["from_cache"] is False
        assert second.json()["from_cache"] is True
        assert client.get("/scraping/cache").json()["hits"] == 1
        assert client.delete("/scraping/cache", params={"url": URL}).json() == {"deleted": 1, "url": URL}

    def test_test_endpoint_returns_debug_on_failure(self, client: TestClient, fetcher: FakeFetcher) -> None:
        fetcher.pages[URL] = "<html><body><p>Alçı</p></body></html>"

        response = client.post("/scraping/test", json={"url": URL, "hint": ".fiyat"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "No price found for hint"
        assert body["debug_info"]["total_elements"] > 0
        assert body["html_preview"].startswith("<html>")

    def test_invalid_url_is_400(self, client: TestClient) -> None:
        response = client.post("/scraping/test", json={"url": "javascript:alert(1)", "hint": ".p"})

        assert response.status_code == 400

    def test_batch_run_and_launch(self, client: TestClient, tracked: dict, fetcher: FakeFetcher) -> None:
        fetcher.pages[URL] = PAGE

        summary = client.post("/scraping/batch/run")
        accepted = client.post("/scraping/batch", params={"limit": 5})

        assert summary.status_code == 200
        assert summary.json()["attempted"] == 1
        assert summary.json()["details"][0]["material_key"] == "alci-25kg"
        assert accepted.status_code == 202
        assert accepted.json() == {"status": "accepted", "limit": 5}


class TestRateLimit:
    def test_headers_and_429(self, make_service, session_factory, fetcher: FakeFetcher) -> None:
        fetcher.pages[URL] = PAGE
        client = _client(make_service(rate_limit=2), session_factory)
        payload = {"url": URL, "hint": ".fiyat"}

        first = client.post("/scraping/price", json=payload)
        second = client.post("/scraping/price", json=payload)
        third = client.post("/scraping/price", json=payload)

        assert first.headers["X-RateLimit-Limit"] == "2"
        assert first.headers["X-RateLimit-Remaining"] == "1"
        assert second.headers["X-RateLimit-Remaining"] == "0"
        assert third.status_code == 429
        assert int(third.headers["Retry-After"]) >= 1
        assert third.json()["detail"]["error"] == "rate_limited"

    def test_forwarded_identity_is_separate(self, make_service, session_factory, fetcher: FakeFetcher) -> None:
        fetcher.pages[URL] = PAGE
        client = _client(make_service(rate_limit=1), session_factory)
        payload = {"url": URL, "hint": ".fiyat"}

        assert client.post("/scraping/price", json=payload).status_code == 200
        assert client.post("/scraping/price", json=payload).status_code == 429
        forwarded = client.post(
            "/scraping/price", json=payload, headers={"X-Forwarded-For": "203.0.113.9, 10.0.0.1"}
        )
        assert forwarded.status_code == 200

        stats = client.get("/scraping/rate-limit", params={"identity": "203.0.113.9"}).json()
        assert stats["identity"] == "203.0.113.9"
        assert stats["remaining"] == 0
        assert stats["allowed"] is False


class TestMaterialPrices:
    def test_manual_override_and_list(self, client: TestClient) -> None:
        put = client.put("/material-prices/kum", json={"unit_price": "45.90"})
        invalid = client.put("/material-prices/kum", json={"unit_price": "-1"})

        assert put.status_code == 200
        assert put.json()["source"] == "manual"
        assert invalid.status_code == 422
        listed = client.get("/material-prices").json()
        assert [(row["material_key"], row["unit_price"]) for row in listed] == [("kum", "45.90")]
