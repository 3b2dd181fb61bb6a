"""Personalization scoring for chai spots.

Every channel adds to a raw score and to the maximum that channel could have
contributed; the ratio is scaled onto 1-5. Channels that do not apply to a
spot add nothing to either side, so the denominator differs between spots.

Pure functions only: no I/O, same inputs give the same output.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from models import Rating, Spot, UserProfile
from utils import clamp

MIN_SCORE = 1.0
MAX_SCORE = 5.0

TASTE_WEIGHT = 2.0
TASTE_CHANNEL_MAX = 10.0
OWN_RATING_WEIGHT = 3.0
OWN_RATING_MAX = 15.0
TAG_WEIGHT = 5.0
FRIEND_WEIGHT = 2.0
FRIEND_MAX = 10.0
COMMUNITY_WEIGHT = 1.5
COMMUNITY_MAX = 7.5
VOLUME_WEIGHT = 0.5
VOLUME_MAX = 10.0

CHANNELS = ("taste_match", "own_rating", "flavor_tags", "friends", "community", "volume")

LABEL_THRESHOLDS = (
    (4.5, "excellent"),
    (3.5, "good"),
    (2.5, "moderate"),
)

CLAUSES: Dict[str, str] = {
    "taste_match": "matches your creaminess and strength preferences",
    "own_rating": "you have rated it before",
    "flavor_tags": "serves flavors you love",
    "friends": "recommended by your friends",
    "community": "well rated by the community",
    "volume": "popular with many reviewers",
}


@dataclass
class _Accumulator:
    raw: float = 0.0
    max: float = 0.0


def _own_rating_for(spot: Spot, own_ratings: Sequence[Rating]) -> Optional[Rating]:
    for rating in own_ratings:
        if rating.spot_id == spot.id:
            return rating
    return None


def _taste_points(rating_value: int, preferred: int) -> float:
    return (5 - abs(rating_value - preferred)) * TASTE_WEIGHT


def _tag_matches(chai_types: Sequence[str], top_tags: Sequence[str]) -> int:
    needles = [t.lower() for t in top_tags if t]
    return sum(1 for chai_type in chai_types if any(n in chai_type.lower() for n in needles))


def _channels(
    spot: Spot,
    profile: Optional[UserProfile],
    own_ratings: Sequence[Rating],
    friend_ratings: Sequence[Rating],
) -> tuple[Dict[str, float], _Accumulator]:
    contributions = {name: 0.0 for name in CHANNELS}
    acc = _Accumulator()

    own = _own_rating_for(spot, own_ratings)
    if own is not None and profile is not None and profile.has_taste_setup:
        preferred_creaminess, preferred_strength = profile.taste_vector  # type: ignore[misc]
        for sub_rating, preferred in (
            (own.creaminess_rating, preferred_creaminess),
            (own.strength_rating, preferred_strength),
        ):
            if sub_rating is None:
                continue
            contributions["taste_match"] += _taste_points(sub_rating, preferred)
            acc.max += TASTE_CHANNEL_MAX

        contributions["own_rating"] = own.value * OWN_RATING_WEIGHT
        acc.max += OWN_RATING_MAX

    if profile is not None and profile.top_taste_tags:
        contributions["flavor_tags"] = _tag_matches(spot.chai_types, profile.top_taste_tags) * TAG_WEIGHT
        acc.max += len(spot.chai_types) * TAG_WEIGHT

    friend_values = [r.value for r in friend_ratings if r.spot_id == spot.id]
    if friend_values:
        contributions["friends"] = sum(friend_values) / len(friend_values) * FRIEND_WEIGHT
        acc.max += FRIEND_MAX

    contributions["community"] = spot.average_rating * COMMUNITY_WEIGHT
    acc.max += COMMUNITY_MAX

    contributions["volume"] = min(spot.rating_count * VOLUME_WEIGHT, VOLUME_MAX)
    acc.max += VOLUME_MAX

    acc.raw = sum(contributions.values())
    return contributions, acc


def personalization_score(
    spot: Spot,
    profile: Optional[UserProfile],
    own_ratings: Sequence[Rating],
    friend_ratings: Sequence[Rating],
) -> float:
    _, acc = _channels(spot, profile, own_ratings, friend_ratings)
    if acc.max > 0:
        return clamp(acc.raw / acc.max * MAX_SCORE, MIN_SCORE, MAX_SCORE)
    return clamp(spot.average_rating, MIN_SCORE, MAX_SCORE)


def score_breakdown(
    spot: Spot,
    profile: Optional[UserProfile],
    own_ratings: Sequence[Rating],
    friend_ratings: Sequence[Rating],
) -> Dict[str, float]:
    contributions, _ = _channels(spot, profile, own_ratings, friend_ratings)
    return {name: round(value, 4) for name, value in contributions.items()}


def score_label(score: float) -> str:
    for threshold, label in LABEL_THRESHOLDS:
        if score >= threshold:
            return label
    return "low"


def score_explanation(
    spot: Spot,
    profile: Optional[UserProfile],
    own_ratings: Sequence[Rating],
    friend_ratings: Sequence[Rating],
) -> str:
    score = personalization_score(spot, profile, own_ratings, friend_ratings)
    breakdown = score_breakdown(spot, profile, own_ratings, friend_ratings)
    clauses: List[str] = [CLAUSES[name] for name in CHANNELS if breakdown[name] > 0]

    headline = f"{score_label(score).capitalize()} match ({score:.1f}/5)"
    if not clauses:
        return f"{headline}: not enough signal yet"
    return f"{headline}: {', '.join(clauses)}"
