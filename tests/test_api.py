"""Tests for the HTTP endpoints (lifespan not started, storage mocked)."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from core import db
from core.config import Settings
from delegations import repository, service
from main import create_app, format_uptime

ROW = {
    "timestamp": datetime(2019, 3, 4, 5, 6, 7, tzinfo=timezone.utc),
    "amount": 125_000_000,
    "delegator": "tz1a1b2c3",
    "level": 367_000,
}


@pytest.fixture
def client() -> TestClient:
    return TestClient(create_app(Settings(sync_enabled=False)))


@pytest.fixture
def get_page(monkeypatch: pytest.MonkeyPatch) -> AsyncMock:
    mock = AsyncMock(return_value=[ROW])
    monkeypatch.setattr(repository, "get_page", mock)
    return mock


def test_first_page_without_filter(client: TestClient, get_page: AsyncMock) -> None:
    resp = client.get("/xtz/delegations")

    assert resp.status_code == 200
    assert resp.json() == {
        "data": [
            {
                "timestamp": "2019-03-04T05:06:07Z",
                "amount": "125000000",
                "delegator": "tz1a1b2c3",
                "level": "367000",
            }
        ]
    }
    get_page.assert_awaited_once_with(year=None, limit=50, offset=0)


def test_year_and_page_select_offset(client: TestClient, get_page: AsyncMock) -> None:
    resp = client.get("/xtz/delegations", params={"year": "2019", "page": "3"})

    assert resp.status_code == 200
    get_page.assert_awaited_once_with(year=2019, limit=50, offset=100)


def test_empty_result_is_empty_list(client: TestClient, get_page: AsyncMock) -> None:
    get_page.return_value = []
    resp = client.get("/xtz/delegations", params={"year": "2024"})

    assert resp.status_code == 200
    assert resp.json() == {"data": []}


@pytest.mark.parametrize(
    ("params", "detail"),
    [
        ({"page": "0"}, "invalid page"),
        ({"page": "-2"}, "invalid page"),
        ({"page": "two"}, "invalid page"),
        ({"year": "abcd"}, "invalid year"),
        ({"year": "2017"}, "invalid year"),
        ({"year": "2019", "page": "0"}, "invalid page"),
        ({"year": "2_019"}, "invalid year"),
        ({"year": " 2019"}, "invalid year"),
        ({"year": "+2019"}, "invalid year"),
        ({"year": "\uff12\uff10\uff11\uff19"}, "invalid year"),
        ({"year": "10000"}, "invalid year"),
        ({"page": " 3"}, "invalid page"),
        ({"page": "1_0"}, "invalid page"),
        ({"page": str(10**20)}, "invalid page"),
        ({"page": str(2**63)}, "invalid page"),
    ],
)
def test_bad_input_rejected_before_storage(
    client: TestClient,
    get_page: AsyncMock,
    params: dict,
    detail: str,
) -> None:
    resp = client.get("/xtz/delegations", params=params)

    assert resp.status_code == 400
    assert resp.json() == {"detail": detail}
    get_page.assert_not_awaited()


def test_storage_failure_is_500(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(repository, "get_page", AsyncMock(side_effect=OSError("connection reset")))

    resp = client.get("/xtz/delegations")

    assert resp.status_code == 500
    assert resp.json() == {"detail": "internal error"}


def test_health_ok(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(db, "ping", AsyncMock(return_value=None))
    count = AsyncMock(return_value=7)
    monkeypatch.setattr(repository, "count", count)

    resp = client.get("/health")

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "healthy"
    assert body["checks"]["database"] == "healthy"
    assert body["checks"]["delegations"] == "7"
    assert body["checks"]["sync"] == "disabled"
    assert body["uptime"].endswith("s")
    count.assert_awaited_once_with()


def test_health_unhealthy_when_db_down(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(db, "ping", AsyncMock(side_effect=OSError("connection refused")))

    resp = client.get("/health")

    assert resp.status_code == 503
    body = resp.json()
    assert body["status"] == "unhealthy"
    assert body["checks"]["database"].startswith("unhealthy")


def test_format_uptime() -> None:
    assert format_uptime(4.4) == "4s"
    assert format_uptime(125) == "2m5s"
    assert format_uptime(3723) == "1h2m3s"


def test_largest_page_keeps_offset_within_int8() -> None:
    assert service.parse_page(str(service.MAX_PAGE)) == service.MAX_PAGE
    assert (service.MAX_PAGE - 1) * service.PAGE_SIZE <= 2**63 - 1
    assert service.parse_year("9999") == 9999
