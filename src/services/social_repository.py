from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger

from config import Configuration
from models import Rating, UserProfile
from services.spot_repository import MalformedRecord
from services.store import DocumentStore, StoreError, WriteFailed
from utils import as_float, as_int


class ProfileLoadFailed(RuntimeError):
    pass


class RatingsLoadFailed(RuntimeError):
    pass


def _optional_score(value: Any) -> Optional[int]:
    score = as_int(value)
    if score is None or not 1 <= score <= 5:
        return None
    return score


def _timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return None
    return None


def decode_rating(doc_id: str, data: Dict[str, Any]) -> Rating:
    spot_id = data.get("spotId")
    user_id = data.get("userId")
    value = as_int(data.get("value"))
    if not isinstance(spot_id, str) or not isinstance(user_id, str):
        raise MalformedRecord(f"rating {doc_id} missing spotId/userId")
    if value is None:
        raise MalformedRecord(f"rating {doc_id} has no integer value")
    if not 1 <= value <= 5:
        raise MalformedRecord(f"rating {doc_id} value {value} outside 1-5")

    notes = data.get("flavorNotes")
    return Rating(
        id=doc_id,
        spot_id=spot_id,
        user_id=user_id,
        value=value,
        creaminess_rating=_optional_score(data.get("creaminessRating")),
        strength_rating=_optional_score(data.get("chaiStrengthRating")),
        flavor_notes=[str(n) for n in notes] if isinstance(notes, list) else None,
        timestamp=_timestamp(data.get("timestamp")),
        comment=data.get("comment") if isinstance(data.get("comment"), str) else None,
        username=data.get("username") if isinstance(data.get("username"), str) else None,
        spot_name=data.get("spotName") if isinstance(data.get("spotName"), str) else None,
        visibility=str(data.get("visibility") or "public"),
    )


def decode_profile(uid: str, data: Dict[str, Any]) -> UserProfile:
    taste = data.get("tasteVector")
    taste_vector: Optional[list[int]] = None
    if isinstance(taste, list) and len(taste) == 2:
        parsed = [as_float(v) for v in taste]
        # entries outside 1-5 mean the taste setup is unusable
        if all(v is not None and 1 <= v <= 5 for v in parsed):
            taste_vector = [int(v) for v in parsed]  # type: ignore[arg-type]

    tags = data.get("topTasteTags")
    friends = data.get("friends") or []
    return UserProfile(
        uid=uid,
        display_name=str(data.get("displayName") or ""),
        taste_vector=taste_vector,
        top_taste_tags=[str(t) for t in tags] if isinstance(tags, list) and tags else None,
        friends=[str(f) for f in friends if isinstance(f, str)],
    )


class SocialRepository:
    """Reads profiles and ratings; writes ratings."""

    def __init__(self, store: DocumentStore, cfg: Configuration) -> None:
        self.store = store
        self.cfg = cfg

    async def load_profile(self, uid: str) -> Optional[UserProfile]:
        try:
            data = await self.store.get(self.cfg.users_collection, uid)
        except StoreError as exc:
            raise ProfileLoadFailed(f"profile {uid}: {exc}") from exc
        if data is None:
            return None
        return decode_profile(uid, data)

    def _decode_all(self, docs: List[tuple[str, Dict[str, Any]]]) -> List[Rating]:
        ratings: list[Rating] = []
        for doc_id, data in docs:
            try:
                ratings.append(decode_rating(doc_id, data))
            except MalformedRecord as exc:
                logger.debug("dropping malformed rating: {}", exc)
        return ratings

    async def load_own_ratings(self, uid: str) -> List[Rating]:
        try:
            docs = await self.store.query_equal(self.cfg.ratings_collection, "userId", uid)
        except StoreError as exc:
            raise RatingsLoadFailed(f"own ratings for {uid}: {exc}") from exc
        return self._decode_all(docs)

    async def load_friend_ratings(self, friend_ids: Sequence[str]) -> List[Rating]:
        if not friend_ids:
            return []
        try:
            docs = await self.store.query_in(self.cfg.ratings_collection, "userId", list(friend_ids))
        except StoreError as exc:
            raise RatingsLoadFailed(f"friend ratings: {exc}") from exc
        return [r for r in self._decode_all(docs) if r.visibility != "private"]

    async def create_rating(
        self,
        *,
        spot_id: str,
        user_id: str,
        value: int,
        creaminess_rating: Optional[int] = None,
        strength_rating: Optional[int] = None,
        flavor_notes: Optional[List[str]] = None,
        comment: Optional[str] = None,
        visibility: str = "public",
    ) -> Rating:
        data: Dict[str, Any] = {
            "spotId": spot_id,
            "userId": user_id,
            "value": int(value),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "visibility": visibility,
        }
        if creaminess_rating is not None:
            data["creaminessRating"] = int(creaminess_rating)
        if strength_rating is not None:
            data["chaiStrengthRating"] = int(strength_rating)
        if flavor_notes:
            data["flavorNotes"] = list(flavor_notes)
        if comment:
            data["comment"] = comment

        try:
            doc_id = await self.store.add(self.cfg.ratings_collection, data)
        except StoreError as exc:
            raise WriteFailed(f"create rating for {spot_id}: {exc}") from exc
        return decode_rating(doc_id, data)
