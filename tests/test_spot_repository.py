from __future__ import annotations

import asyncio

import pytest

from models import Spot
from services.spot_repository import MalformedRecord, SpotRepository, decode_spot, dedupe_spots
from services.store import InMemoryStore, WriteFailed


VALID = {
    "name": "Chai Bar",
    "address": "12 Valencia St",
    "latitude": 37.76,
    "longitude": -122.42,
    "chaiTypes": ["Masala Chai"],
}


def test_decode_spot_defaults_aggregates() -> None:
    spot = decode_spot("abc", dict(VALID))
    assert spot.id == "abc"
    assert spot.chai_types == ("Masala Chai",)
    assert spot.average_rating == 0.0
    assert spot.rating_count == 0


@pytest.mark.parametrize("field", ["name", "address", "latitude", "longitude", "chaiTypes"])
def test_decode_spot_rejects_missing_required_field(field: str) -> None:
    data = dict(VALID)
    del data[field]
    with pytest.raises(MalformedRecord):
        decode_spot("abc", data)


def test_decode_spot_rejects_wrong_types() -> None:
    with pytest.raises(MalformedRecord):
        decode_spot("abc", {**VALID, "latitude": "37.7"})
    with pytest.raises(MalformedRecord):
        decode_spot("abc", {**VALID, "chaiTypes": "Masala"})


def test_decode_spot_id_is_the_document_key() -> None:
    assert decode_spot("abc", {**VALID, "id": "other"}).id == "abc"


def test_spot_equality_is_by_id() -> None:
    a = decode_spot("x", {**VALID, "averageRating": 4.0})
    b = decode_spot("x", {**VALID, "averageRating": 2.0})
    assert a == b
    assert len({a, b}) == 1


def test_dedupe_last_record_wins_and_is_idempotent() -> None:
    first = Spot(id="x", name="A", address="a", latitude=0, longitude=0, average_rating=4.0)
    other = Spot(id="y", name="B", address="b", latitude=0, longitude=0)
    last = Spot(id="x", name="A", address="a", latitude=0, longitude=0, average_rating=2.0)

    once = dedupe_spots([first, other, last])
    assert [s.id for s in once] == ["x", "y"]
    assert once[0].average_rating == 2.0
    twice = dedupe_spots(once)
    assert [(s.id, s.average_rating) for s in twice] == [(s.id, s.average_rating) for s in once]


def test_load_all_merges_sources_and_drops_malformed(store, cfg) -> None:
    spots = asyncio.run(SpotRepository(store, cfg).load_all())
    ids = [s.id for s in spots]
    assert ids == ["s1", "s2", "s3", "s4"]
    assert len(set(ids)) == len(ids)
    assert "broken" not in ids


def test_same_id_in_both_sources_survives_once(cfg) -> None:
    store = InMemoryStore({
        "chaiFinder": {"x": {**VALID, "averageRating": 4.0}},
        "chaiSpots": {"x": {**VALID, "averageRating": 1.0}},
    })
    spots = asyncio.run(SpotRepository(store, cfg).load_all())
    assert [s.id for s in spots] == ["x"]


def test_failing_source_is_skipped(store, cfg) -> None:
    store.failing.add("chaiFinder")
    spots = asyncio.run(SpotRepository(store, cfg).load_all())
    assert [s.id for s in spots] == ["s1", "s4"]

    store.failing.add("chaiSpots")
    assert asyncio.run(SpotRepository(store, cfg).load_all()) == []


def test_create_spot_writes_both_collections(store, cfg) -> None:
    repo = SpotRepository(store, cfg)
    spot = asyncio.run(repo.create_spot(
        name="Fresh Chai", address="1 Main St", latitude=37.7, longitude=-122.4,
        chai_types=["Kashmiri"], rating=4, creator_id="u1",
    ))
    assert spot.rating_count == 1
    assert spot.average_rating == 4.0
    primary = asyncio.run(store.get("chaiFinder", spot.id))
    secondary = asyncio.run(store.get("chaiSpots", spot.id))
    assert primary == secondary
    assert primary["creatorId"] == "u1"


def test_secondary_write_failure_is_swallowed(store, cfg) -> None:
    store.failing.add("chaiSpots")
    spot = asyncio.run(SpotRepository(store, cfg).create_spot(
        name="Fresh Chai", address="1 Main St", latitude=37.7, longitude=-122.4,
        chai_types=[], rating=5,
    ))
    store.failing.clear()
    assert asyncio.run(store.get("chaiFinder", spot.id)) is not None
    assert asyncio.run(store.get("chaiSpots", spot.id)) is None


def test_primary_write_failure_raises(store, cfg) -> None:
    store.failing.add("chaiFinder")
    with pytest.raises(WriteFailed):
        asyncio.run(SpotRepository(store, cfg).create_spot(
            name="Fresh Chai", address="1 Main St", latitude=37.7, longitude=-122.4,
            chai_types=[], rating=5,
        ))
