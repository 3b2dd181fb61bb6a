from __future__ import annotations

from typing import Optional

import pytest

from config import Configuration
from services.map_state import MapState
from services.social_repository import SocialRepository
from services.spot_repository import SpotRepository
from services.store import InMemoryStore
from services.viewport import ViewportReconciler, ViewportStore


def seed_collections() -> dict:
    return {
        "chaiFinder": {
            "s1": {
                "name": "Chai Bar",
                "address": "12 Valencia St",
                "latitude": 37.76,
                "longitude": -122.42,
                "chaiTypes": ["Masala Chai", "Cardamom"],
                "averageRating": 4.5,
                "ratingCount": 20,
            },
            "s2": {
                "name": "Tea Corner",
                "address": "400 Castro St",
                "latitude": 37.78,
                "longitude": -122.41,
                "chaiTypes": ["Green Tea"],
                "averageRating": 2.0,
                "ratingCount": 4,
            },
            "s3": {
                "name": "New Spot",
                "address": "88 Mission St",
                "latitude": 37.80,
                "longitude": -122.44,
                "chaiTypes": ["Ginger Chai"],
                "averageRating": 3.0,
                "ratingCount": 1,
            },
        },
        "chaiSpots": {
            "s1": {
                "name": "Chai Bar",
                "address": "12 Valencia St",
                "latitude": 37.76,
                "longitude": -122.42,
                "chaiTypes": ["Masala Chai", "Cardamom"],
                "averageRating": 4.4,
                "ratingCount": 20,
            },
            "s4": {
                "name": "Dirty Chai Cafe",
                "address": "5 Market St",
                "latitude": 37.75,
                "longitude": -122.40,
                "chaiTypes": ["Dirty Chai"],
                "averageRating": 3.5,
                "ratingCount": 10,
            },
            "broken": {
                "name": "No Address",
                "latitude": 37.7,
                "longitude": -122.4,
                "chaiTypes": [],
            },
        },
        "users": {
            "u1": {
                "displayName": "Asha",
                "tasteVector": [4, 3],
                "topTasteTags": ["masala"],
                "friends": ["f1"],
            },
            "f1": {"displayName": "Ravi", "friends": ["u1"]},
        },
        "ratings": {
            "r1": {"spotId": "s1", "userId": "u1", "value": 5, "creaminessRating": 4, "chaiStrengthRating": 3},
            "r2": {"spotId": "s4", "userId": "f1", "value": 5},
            "r3": {"spotId": "s2", "userId": "f1", "value": 1, "visibility": "private"},
        },
    }


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StubGeocoder:
    def __init__(self, results: Optional[dict] = None, error: Optional[Exception] = None) -> None:
        self.results = results or {}
        self.error = error
        self.queries: list[str] = []

    def geocode(self, text: str):
        self.queries.append(text)
        if self.error is not None:
            raise self.error
        return self.results.get(text)


@pytest.fixture
def cfg() -> Configuration:
    return Configuration(search_debounce_sec=0.0)


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore(seed_collections())


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_state(cfg, store, clock):
    def _make(uid: str = "u1", geocoder=None, viewport_store: Optional[ViewportStore] = None) -> MapState:
        reconciler = ViewportReconciler(cfg, viewport_store or ViewportStore(), uid=uid, clock=clock)
        return MapState(
            uid,
            cfg,
            spots=SpotRepository(store, cfg),
            social=SocialRepository(store, cfg),
            viewport=reconciler,
            geocoder=geocoder,
        )

    return _make


@pytest.fixture
def stub_geocoder():
    return StubGeocoder
