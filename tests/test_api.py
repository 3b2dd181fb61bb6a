from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

import main


@pytest.fixture
def client(cfg, store, monkeypatch):
    monkeypatch.setattr(main, "sessions", main.build_sessions(cfg, store))
    with TestClient(main.app) as test_client:
        yield test_client


def test_healthz(client) -> None:
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_reload_returns_snapshot(client) -> None:
    resp = client.post("/users/u1/map/reload")
    assert resp.status_code == 200
    body = resp.json()
    assert body["total_spots"] == 4
    assert body["personalized_ids"] == ["s1", "s3"]
    assert body["spots"][0]["id"] == "s1"
    assert body["spots"][0]["personalized"] is True
    assert body["reason_text"] == "2 personalized spots + 2 community spots"


def test_sort_and_filters(client) -> None:
    client.post("/users/u1/map/reload")

    body = client.put("/users/u1/map/sort", json={"order": "name"}).json()
    assert [s["name"] for s in body["spots"]] == ["Chai Bar", "Dirty Chai Cafe", "New Spot", "Tea Corner"]

    body = client.put("/users/u1/map/filters", json={"personalized_only": False, "community_spots": False}).json()
    assert body["spots"] == []
    assert body["total_spots"] == 4


def test_explanation(client) -> None:
    client.post("/users/u1/map/reload")
    resp = client.get("/users/u1/map/spots/s1/explanation")
    assert resp.status_code == 200
    assert resp.json()["label"] == "excellent"
    assert client.get("/users/u1/map/spots/nope/explanation").status_code == 404


def test_create_spot_validation_and_reload(client) -> None:
    payload = {
        "name": "Fresh",
        "address": "1 Main St",
        "latitude": 37.7,
        "longitude": -122.4,
        "chai_types": ["Masala"],
        "rating": 6,
    }
    assert client.post("/users/u1/map/spots", json=payload).status_code == 422

    payload["rating"] = 4
    resp = client.post("/users/u1/map/spots", json=payload)
    assert resp.status_code == 201
    body = client.post("/users/u1/map/reload").json()
    assert body["total_spots"] == 5


def test_create_spot_write_failure_is_502(client, store) -> None:
    store.failing.add("chaiFinder")
    resp = client.post("/users/u1/map/spots", json={
        "name": "Fresh", "address": "1 Main St", "latitude": 37.7, "longitude": -122.4, "rating": 4,
    })
    assert resp.status_code == 502


def test_viewport_payload_requires_positive_span(client) -> None:
    resp = client.post("/users/u1/map/viewport", json={
        "latitude": 37.7, "longitude": -122.4, "latitude_delta": 0, "longitude_delta": 0.1,
    })
    assert resp.status_code == 422
