"""Single state holder for one user's personalized map.

All mutable state lives here. Every change builds a complete ``MapSnapshot``
(spots, scores, personalized ids, display list, viewport) and publishes it
with one assignment, so readers never observe spots without their derived
views. Async mutators are serialized by a lock; concurrent reloads share a
single in-flight task.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from enum import Enum
from typing import Any, Collection, Dict, List, Optional, Protocol, Sequence

from loguru import logger

from config import Configuration
from models import Coordinate, FilterState, MapSnapshot, Rating, SortOrder, Spot, UserProfile, Viewport
from services.classification import personalized_ids, score_spots
from services.filtering import displayed_spots
from services.geocoding import GeocodingError
from services.scoring import score_breakdown, score_explanation, score_label
from services.social_repository import ProfileLoadFailed, RatingsLoadFailed, SocialRepository
from services.spot_repository import SpotRepository
from services.store import WriteFailed
from services.viewport import ViewportReconciler


class Geocoder(Protocol):
    def geocode(self, text: str) -> Optional[Coordinate]: ...


class MapEvent(str, Enum):
    RATINGS_CHANGED = "ratings_changed"
    SPOT_CREATED = "spot_created"
    PROFILE_CHANGED = "profile_changed"
    FRIENDS_CHANGED = "friends_changed"


RELOAD_EVENTS = {MapEvent.RATINGS_CHANGED, MapEvent.SPOT_CREATED}


def _reason_text(total: int, personalized: int) -> str:
    if total == 0:
        return "No chai spots found yet"
    return f"{personalized} personalized spots + {total - personalized} community spots"


class MapState:
    def __init__(
        self,
        uid: str,
        cfg: Configuration,
        *,
        spots: SpotRepository,
        social: SocialRepository,
        viewport: ViewportReconciler,
        geocoder: Optional[Geocoder] = None,
    ) -> None:
        self.uid = uid
        self.cfg = cfg
        self.spot_repo = spots
        self.social = social
        self.reconciler = viewport
        self.geocoder = geocoder

        self._lock = asyncio.Lock()
        self._reload_task: Optional[asyncio.Task] = None
        self._events: asyncio.Queue[MapEvent] = asyncio.Queue()
        self._consumer: Optional[asyncio.Task] = None
        self._search_generation = 0
        self._own_ratings: List[Rating] = []
        self._friend_ratings: List[Rating] = []
        self._snapshot = MapSnapshot(viewport=viewport.current)

    # -- read side -------------------------------------------------------

    @property
    def snapshot(self) -> MapSnapshot:
        return self._snapshot

    @property
    def displayed(self) -> tuple[Spot, ...]:
        return self._snapshot.displayed

    @property
    def personalized_ids(self) -> frozenset[str]:
        return self._snapshot.personalized_ids

    @property
    def viewport(self) -> Optional[Viewport]:
        return self._snapshot.viewport

    def explain(self, spot_id: str) -> Optional[Dict[str, Any]]:
        snap = self._snapshot
        spot = next((s for s in snap.spots if s.id == spot_id), None)
        if spot is None:
            return None
        args = (spot, snap.profile, self._own_ratings, self._friend_ratings)
        score = snap.scores[spot.id]
        return {
            "spot_id": spot.id,
            "score": round(score, 2),
            "label": score_label(score),
            "personalized": spot.id in snap.personalized_ids,
            "breakdown": score_breakdown(*args),
            "explanation": score_explanation(*args),
        }

    # -- publishing ------------------------------------------------------

    def _publish(self, *, rescore: bool = False, **changes: Any) -> MapSnapshot:
        draft = replace(self._snapshot, **changes)
        scores = draft.scores
        personalized = draft.personalized_ids
        if rescore:
            scores = score_spots(draft.spots, draft.profile, self._own_ratings, self._friend_ratings)
            personalized = personalized_ids(draft.spots, scores, self.cfg.personalization_threshold)
        displayed = displayed_spots(
            draft.spots,
            scores=scores,
            personalized=personalized,
            filters=draft.filters,
            order=draft.sort_order,
            search_text=draft.search_text,
            user_location=draft.user_location,
        )
        self._snapshot = replace(
            draft,
            scores=scores,
            personalized_ids=personalized,
            displayed=tuple(displayed),
            viewport=self.reconciler.current,
            reason_text=_reason_text(len(draft.spots), len(personalized)),
            version=draft.version + 1,
        )
        return self._snapshot

    # -- loading ---------------------------------------------------------

    async def _load_personalization(self) -> Optional[UserProfile]:
        """Fetch profile and ratings; each failed piece keeps its previous value."""
        profile = self._snapshot.profile
        try:
            profile = await self.social.load_profile(self.uid)
        except ProfileLoadFailed as exc:
            logger.warning("profile load failed, keeping previous: {}", exc)

        own = self._own_ratings
        friends = self._friend_ratings
        try:
            own = await self.social.load_own_ratings(self.uid)
        except RatingsLoadFailed as exc:
            logger.warning("own ratings load failed, keeping previous: {}", exc)
        try:
            friends = await self.social.load_friend_ratings(profile.friends if profile else [])
        except RatingsLoadFailed as exc:
            logger.warning("friend ratings load failed, keeping previous: {}", exc)

        self._own_ratings = own
        self._friend_ratings = friends
        return profile

    async def _reload(self) -> MapSnapshot:
        async with self._lock:
            spots = await self.spot_repo.load_all()
            profile = await self._load_personalization()
            self.reconciler.data_reloaded(spots, self._snapshot.user_location)
            snap = self._publish(rescore=True, spots=tuple(spots), profile=profile)
            logger.info(
                "map reloaded for {}: {} spots, {} personalized, {} own / {} friend ratings",
                self.uid,
                len(snap.spots),
                len(snap.personalized_ids),
                len(self._own_ratings),
                len(self._friend_ratings),
            )
            return snap

    async def reload(self) -> MapSnapshot:
        """Reload spots and personalization; callers arriving mid-reload join it."""
        if self._reload_task is None or self._reload_task.done():
            self._reload_task = asyncio.create_task(self._reload())
        return await asyncio.shield(self._reload_task)

    async def refresh_personalization(self) -> MapSnapshot:
        async with self._lock:
            profile = await self._load_personalization()
            return self._publish(rescore=True, profile=profile)

    # -- commands --------------------------------------------------------

    def set_filter(self, personalized_only: bool, community_spots: bool) -> MapSnapshot:
        filters = FilterState(show_personalized_only=personalized_only, show_community_spots=community_spots)
        return self._publish(filters=filters)

    def set_sort_order(self, order: SortOrder) -> MapSnapshot:
        return self._publish(sort_order=SortOrder(order))

    def fit_to_all(self) -> MapSnapshot:
        self.reconciler.fit_to(self._snapshot.spots)
        return self._publish()

    def fit_to_subset(self, ids: Collection[str]) -> MapSnapshot:
        wanted = set(ids)
        subset = [spot for spot in self._snapshot.spots if spot.id in wanted]
        self.reconciler.fit_to(subset)
        return self._publish()

    def update_location(self, location: Coordinate) -> MapSnapshot:
        self.reconciler.location_updated(location)
        return self._publish(user_location=location)

    def user_moved_map(self, viewport: Viewport) -> MapSnapshot:
        self.reconciler.user_moved(viewport)
        return self._publish()

    async def search(self, text: str) -> MapSnapshot:
        """Narrow the list immediately, then geocode the text after a debounce.

        Only the most recently issued query may move the map; earlier
        responses are dropped on arrival.
        """
        self._search_generation += 1
        generation = self._search_generation
        query = text.strip()
        snap = self._publish(search_text=query)
        if not query or self.geocoder is None:
            return snap

        await asyncio.sleep(self.cfg.search_debounce_sec)
        if generation != self._search_generation:
            return self._snapshot

        try:
            location = await asyncio.to_thread(self.geocoder.geocode, query)
        except (GeocodingError, ValueError) as exc:
            logger.warning("geocoding {!r} failed: {}", query, exc)
            return self._snapshot

        if generation != self._search_generation:
            logger.debug("discarding stale geocode result for {!r}", query)
            return self._snapshot
        if location is None:
            return self._snapshot
        self.reconciler.center_on(location)
        return self._publish()

    async def create_spot(
        self,
        *,
        name: str,
        address: str,
        latitude: float,
        longitude: float,
        chai_types: Sequence[str],
        rating: int,
        creaminess_rating: Optional[int] = None,
        strength_rating: Optional[int] = None,
        flavor_notes: Optional[List[str]] = None,
    ) -> bool:
        try:
            spot = await self.spot_repo.create_spot(
                name=name,
                address=address,
                latitude=latitude,
                longitude=longitude,
                chai_types=chai_types,
                rating=rating,
                creator_id=self.uid,
            )
        except WriteFailed as exc:
            logger.warning("create spot failed: {}", exc)
            return False
        # venue is stored; the rating write no longer decides the result
        try:
            await self.social.create_rating(
                spot_id=spot.id,
                user_id=self.uid,
                value=rating,
                creaminess_rating=creaminess_rating,
                strength_rating=strength_rating,
                flavor_notes=flavor_notes,
            )
        except WriteFailed as exc:
            logger.warning("spot {} saved but creator rating failed: {}", spot.id, exc)
        self.post(MapEvent.SPOT_CREATED)
        return True

    async def submit_rating(
        self,
        *,
        spot_id: str,
        value: int,
        creaminess_rating: Optional[int] = None,
        strength_rating: Optional[int] = None,
        flavor_notes: Optional[List[str]] = None,
        comment: Optional[str] = None,
        visibility: str = "public",
    ) -> bool:
        try:
            await self.social.create_rating(
                spot_id=spot_id,
                user_id=self.uid,
                value=value,
                creaminess_rating=creaminess_rating,
                strength_rating=strength_rating,
                flavor_notes=flavor_notes,
                comment=comment,
                visibility=visibility,
            )
        except WriteFailed as exc:
            logger.warning("submit rating failed: {}", exc)
            return False
        self.post(MapEvent.RATINGS_CHANGED)
        return True

    # -- events ----------------------------------------------------------

    def post(self, event: MapEvent) -> None:
        self._events.put_nowait(MapEvent(event))

    async def handle(self, event: MapEvent) -> MapSnapshot:
        if event in RELOAD_EVENTS:
            return await self.reload()
        return await self.refresh_personalization()

    async def drain_events(self) -> int:
        """Process queued events in order without waiting for new ones."""
        handled = 0
        while not self._events.empty():
            event = self._events.get_nowait()
            try:
                await self.handle(event)
                handled += 1
            finally:
                self._events.task_done()
        return handled

    async def run_events(self) -> None:
        while True:
            event = await self._events.get()
            try:
                await self.handle(event)
            except Exception as exc:
                logger.exception("handling {} failed: {}", event.value, exc)
            finally:
                self._events.task_done()

    def start(self) -> None:
        if self._consumer is None or self._consumer.done():
            self._consumer = asyncio.create_task(self.run_events())

    def stop(self) -> None:
        if self._consumer is not None:
            self._consumer.cancel()
            self._consumer = None
