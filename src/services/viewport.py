"""Map viewport reconciliation.

Three sources compete for the map region: explicit user pan/zoom, live
location updates, and region fits computed after data changes or on request.
A user interaction suppresses programmatic recentering for a short cool-down;
every accepted region is written through to the viewport store so a cold
start resumes where the user left off.
"""

from __future__ import annotations

import json
import os
import time
from typing import Callable, Optional, Sequence

from loguru import logger

from config import Configuration
from models import Coordinate, Spot, Viewport
from services.bbox_builder import bounding_box, region_around, region_from_bbox

VIEWPORT_KEY = "lastMapRegion"


class ViewportStore:
    """Persists each user's last viewport as ``{uid: {lastMapRegion: ...}}``.

    Backed by a JSON file when a path is given, otherwise by a dict that
    lives as long as the store; one store is shared by every session.
    """

    def __init__(self, path: Optional[str] = None) -> None:
        self.path = path
        self._memory: dict[str, dict] = {}

    def _read_all(self) -> dict:
        if not self.path:
            return self._memory
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as exc:
            logger.warning("viewport store unreadable at {}: {}", self.path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def load(self, uid: str) -> Optional[Viewport]:
        entry = self._read_all().get(uid)
        record = entry.get(VIEWPORT_KEY) if isinstance(entry, dict) else None
        if not isinstance(record, dict):
            return None
        try:
            return Viewport.from_record(record)
        except (KeyError, TypeError, ValueError):
            logger.warning("ignoring corrupt persisted viewport for {}: {}", uid, record)
            return None

    def save(self, uid: str, viewport: Viewport) -> None:
        if not self.path:
            self._memory[uid] = {VIEWPORT_KEY: viewport.to_record()}
            return
        data = self._read_all()
        data[uid] = {VIEWPORT_KEY: viewport.to_record()}
        try:
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(data, f)
        except OSError as exc:
            logger.warning("failed to persist viewport to {}: {}", self.path, exc)


class ViewportReconciler:
    def __init__(
        self,
        cfg: Configuration,
        store: ViewportStore,
        *,
        uid: str = "local",
        clock: Callable[[], float] = time.monotonic,
        last_known: Optional[Viewport] = None,
    ) -> None:
        self.cfg = cfg
        self.store = store
        self.uid = uid
        self.clock = clock
        self.last_known = last_known
        self._interaction_at: Optional[float] = None
        self.current = self.initial_viewport()

    def default_viewport(self) -> Viewport:
        return region_around(
            Coordinate(self.cfg.default_latitude, self.cfg.default_longitude),
            self.cfg.default_span,
        )

    def initial_viewport(self) -> Viewport:
        persisted = self.store.load(self.uid)
        if persisted is not None:
            self.last_known = persisted
            return persisted
        if self.last_known is not None:
            return self.last_known
        return self.default_viewport()

    @property
    def is_interacting(self) -> bool:
        if self._interaction_at is None:
            return False
        return self.clock() - self._interaction_at < self.cfg.interaction_cooldown_sec

    def _apply(self, viewport: Viewport, reason: str) -> Viewport:
        self.current = viewport
        self.last_known = viewport
        self.store.save(self.uid, viewport)
        logger.debug(
            "viewport -> {:.5f},{:.5f} span {:.4f}x{:.4f} ({})",
            viewport.latitude,
            viewport.longitude,
            viewport.latitude_delta,
            viewport.longitude_delta,
            reason,
        )
        return viewport

    def user_moved(self, viewport: Viewport) -> Viewport:
        self._interaction_at = self.clock()
        return self._apply(viewport, "user")

    def location_updated(self, location: Coordinate) -> Optional[Viewport]:
        if self.is_interacting:
            logger.debug("ignoring location update during user interaction")
            return None
        return self._apply(region_around(location, self.cfg.user_location_span), "location")

    def fit_region(self, spots: Sequence[Spot]) -> Optional[Viewport]:
        if len(spots) == 1:
            return region_around(spots[0].coordinate, self.cfg.single_spot_span)
        bbox = bounding_box(spot.coordinate for spot in spots)
        if bbox is None:
            return None
        return region_from_bbox(bbox, padding=self.cfg.fit_padding_factor, min_span=self.cfg.single_spot_span)

    def data_reloaded(self, spots: Sequence[Spot], user_location: Optional[Coordinate]) -> Optional[Viewport]:
        if self.is_interacting:
            return None
        if user_location is not None:
            return self._apply(region_around(user_location, self.cfg.user_location_span), "reload-location")
        bbox = bounding_box(spot.coordinate for spot in spots)
        if bbox is None:
            return None
        region = region_from_bbox(bbox, padding=self.cfg.fit_padding_factor, min_span=self.cfg.single_spot_span)
        return self._apply(region, "reload-fit")

    def fit_to(self, spots: Sequence[Spot]) -> Optional[Viewport]:
        region = self.fit_region(spots)
        if region is None:
            return None
        return self._apply(region, f"fit {len(spots)}")

    def center_on(self, location: Coordinate, reason: str = "search") -> Viewport:
        return self._apply(region_around(location, self.cfg.user_location_span), reason)
