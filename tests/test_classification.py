from __future__ import annotations

from models import Rating, Spot, UserProfile
from services.classification import is_personalized, personalized_ids, score_spots


def _spot(spot_id: str, average: float, count: int) -> Spot:
    return Spot(id=spot_id, name=spot_id, address="addr", latitude=0.0, longitude=0.0,
                average_rating=average, rating_count=count)


def test_fresh_spot_is_always_personalized() -> None:
    fresh = _spot("fresh", 1.0, 1)
    assert is_personalized(fresh, 1.0)
    assert not is_personalized(_spot("old", 1.0, 2), 1.0)


def test_threshold_is_inclusive() -> None:
    spot = _spot("a", 3.0, 5)
    assert is_personalized(spot, 3.5)
    assert not is_personalized(spot, 3.49)


def test_personalized_ids_recomputed_from_collection() -> None:
    spots = [_spot("loved", 5.0, 30), _spot("meh", 1.0, 3), _spot("fresh", 2.0, 1)]
    profile = UserProfile(uid="u1", taste_vector=[4, 4])
    own = [Rating(id="r", spot_id="loved", user_id="u1", value=5, creaminess_rating=4, strength_rating=4)]

    scores = score_spots(spots, profile, own, [])
    assert set(scores) == {"loved", "meh", "fresh"}
    assert personalized_ids(spots, scores) == frozenset({"loved", "fresh"})
    assert personalized_ids(spots[1:2], scores) == frozenset()
