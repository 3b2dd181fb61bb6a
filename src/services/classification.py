from __future__ import annotations

from typing import Iterable, Mapping, Optional, Sequence

from models import Rating, Spot, UserProfile
from services.scoring import personalization_score

PERSONALIZED_THRESHOLD = 3.5


def is_personalized(spot: Spot, score: float, threshold: float = PERSONALIZED_THRESHOLD) -> bool:
    """A spot is personalized when it scores well, or when it was just created.

    A freshly created spot carries exactly one rating (its creator's) and is
    always surfaced regardless of score.
    """
    return score >= threshold or spot.rating_count == 1


def score_spots(
    spots: Iterable[Spot],
    profile: Optional[UserProfile],
    own_ratings: Sequence[Rating],
    friend_ratings: Sequence[Rating],
) -> dict[str, float]:
    return {spot.id: personalization_score(spot, profile, own_ratings, friend_ratings) for spot in spots}


def personalized_ids(
    spots: Iterable[Spot],
    scores: Mapping[str, float],
    threshold: float = PERSONALIZED_THRESHOLD,
) -> frozenset[str]:
    return frozenset(spot.id for spot in spots if is_personalized(spot, scores[spot.id], threshold))
