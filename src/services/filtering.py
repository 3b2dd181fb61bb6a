from __future__ import annotations

from typing import Collection, List, Mapping, Optional, Sequence

from models import Coordinate, FilterState, SortOrder, Spot
from utils import haversine_km


def matches_search(spot: Spot, text: str) -> bool:
    needle = text.strip().lower()
    if not needle:
        return True
    if needle in spot.name.lower() or needle in spot.address.lower():
        return True
    return any(needle in chai_type.lower() for chai_type in spot.chai_types)


def search_spots(spots: Sequence[Spot], text: str) -> List[Spot]:
    return [spot for spot in spots if matches_search(spot, text)]


def apply_filters(spots: Sequence[Spot], personalized: Collection[str], filters: FilterState) -> List[Spot]:
    """Apply the two visibility toggles as independent passes.

    With both toggles off the passes are complementary and nothing survives.
    """
    result = list(spots)
    if not filters.show_personalized_only:
        result = [spot for spot in result if spot.id not in personalized]
    if not filters.show_community_spots:
        result = [spot for spot in result if spot.id in personalized]
    return result


def sort_spots(
    spots: Sequence[Spot],
    order: SortOrder,
    scores: Mapping[str, float],
    user_location: Optional[Coordinate] = None,
) -> List[Spot]:
    if order is SortOrder.DISTANCE and user_location is not None:
        return sorted(
            spots,
            key=lambda s: haversine_km(user_location.latitude, user_location.longitude, s.latitude, s.longitude),
        )
    if order is SortOrder.RATING:
        return sorted(spots, key=lambda s: s.average_rating, reverse=True)
    if order is SortOrder.NAME:
        return sorted(spots, key=lambda s: s.name)
    # personalization, and distance without a known location
    return sorted(spots, key=lambda s: scores.get(s.id, 0.0), reverse=True)


def displayed_spots(
    spots: Sequence[Spot],
    *,
    scores: Mapping[str, float],
    personalized: Collection[str],
    filters: FilterState,
    order: SortOrder,
    search_text: str = "",
    user_location: Optional[Coordinate] = None,
) -> List[Spot]:
    """Derive the ordered display list.

    An active search replaces the visibility filters instead of narrowing
    them further; the sort order applies either way.
    """
    if search_text.strip():
        working = search_spots(spots, search_text)
    else:
        working = apply_filters(spots, personalized, filters)
    return sort_spots(working, order, scores, user_location)
