"""Data models for the chai map backend."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float


@dataclass(frozen=True, eq=False)
class Spot:
    id: str
    name: str
    address: str
    latitude: float
    longitude: float
    chai_types: tuple[str, ...] = ()
    average_rating: float = 0.0
    rating_count: int = 0

    # Same id from either venue collection is the same spot.
    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Spot):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(latitude=self.latitude, longitude=self.longitude)


@dataclass
class UserProfile:
    uid: str
    display_name: str = ""
    taste_vector: Optional[list[int]] = None  # [creaminess, strength], each 1-5
    top_taste_tags: Optional[list[str]] = None
    friends: list[str] = field(default_factory=list)

    @property
    def has_taste_setup(self) -> bool:
        return self.taste_vector is not None and len(self.taste_vector) == 2


@dataclass
class Rating:
    id: str
    spot_id: str
    user_id: str
    value: int
    creaminess_rating: Optional[int] = None
    strength_rating: Optional[int] = None
    flavor_notes: Optional[list[str]] = None
    timestamp: Optional[datetime] = None
    comment: Optional[str] = None
    username: Optional[str] = None
    spot_name: Optional[str] = None
    visibility: str = "public"  # public | friends | private


@dataclass(frozen=True)
class Viewport:
    latitude: float
    longitude: float
    latitude_delta: float
    longitude_delta: float

    @property
    def center(self) -> Coordinate:
        return Coordinate(latitude=self.latitude, longitude=self.longitude)

    def to_record(self) -> dict[str, float]:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "latitudeDelta": self.latitude_delta,
            "longitudeDelta": self.longitude_delta,
        }

    @classmethod
    def from_record(cls, record: dict) -> "Viewport":
        return cls(
            latitude=float(record["latitude"]),
            longitude=float(record["longitude"]),
            latitude_delta=float(record["latitudeDelta"]),
            longitude_delta=float(record["longitudeDelta"]),
        )


class SortOrder(str, Enum):
    PERSONALIZATION = "personalization"
    DISTANCE = "distance"
    RATING = "rating"
    NAME = "name"


@dataclass(frozen=True)
class FilterState:
    show_personalized_only: bool = True
    show_community_spots: bool = True


@dataclass(frozen=True)
class MapSnapshot:
    spots: tuple[Spot, ...] = ()
    scores: dict[str, float] = field(default_factory=dict)
    personalized_ids: frozenset[str] = frozenset()
    displayed: tuple[Spot, ...] = ()
    viewport: Optional[Viewport] = None
    filters: FilterState = FilterState()
    sort_order: SortOrder = SortOrder.PERSONALIZATION
    search_text: str = ""
    user_location: Optional[Coordinate] = None
    profile: Optional[UserProfile] = None
    reason_text: Optional[str] = None
    version: int = 0
