from __future__ import annotations

import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Optional, Tuple

import requests

from config import Configuration
from models import Coordinate


RETRY_STATUSES = (429, 500, 502, 503, 504)


class GeocodingError(RuntimeError):
    pass


@dataclass
class _RetryPolicy:
    retries: int = 3
    base_delay: float = 0.5


class GeoapifyGeocoder:
    """Free-text to best-match coordinate via Geoapify forward geocoding."""

    def __init__(self, cfg: Configuration, session: Optional[requests.Session] = None) -> None:
        self.cfg = cfg
        self.base = cfg.geoapify_base_url.rstrip("/")
        self.session = session or requests.Session()
        self.policy = _RetryPolicy()
        self._cache_ttl = 60 * 30  # 30 minutes
        self._cache_max = 128
        self._cache: OrderedDict[str, Tuple[float, Optional[Coordinate]]] = OrderedDict()

    def _cache_get(self, key: str) -> Tuple[bool, Optional[Coordinate]]:
        entry = self._cache.get(key)
        if not entry:
            return False, None
        ts, value = entry
        if time.time() - ts > self._cache_ttl:
            self._cache.pop(key, None)
            return False, None
        self._cache.move_to_end(key)
        return True, value

    def _cache_set(self, key: str, value: Optional[Coordinate]) -> None:
        if len(self._cache) >= self._cache_max:
            self._cache.popitem(last=False)
        self._cache[key] = (time.time(), value)

    def _search(self, params: dict) -> dict:
        """GET the forward-geocoding endpoint, retrying throttling, 5xx and network errors."""
        url = f"{self.base}/v1/geocode/search"
        params = {**params, "apiKey": self.cfg.geoapify_api_key}
        failure = ""
        for attempt in range(self.policy.retries + 1):
            if attempt:
                time.sleep(self.policy.base_delay * attempt)
            try:
                resp = self.session.get(
                    url, headers={"Accept": "application/json"}, params=params, timeout=self.cfg.geoapify_timeout
                )
            except requests.RequestException as exc:
                failure = f"request error: {exc}"
                continue
            if resp.status_code in RETRY_STATUSES:
                failure = f"upstream {resp.status_code}"
                continue
            if not resp.ok:
                raise GeocodingError(f"upstream {resp.status_code}: {resp.text[:300]}")
            try:
                return resp.json()
            except ValueError as exc:
                raise GeocodingError("invalid json response") from exc
        raise GeocodingError(f"gave up after {self.policy.retries + 1} attempts: {failure}")

    def geocode(self, text: str) -> Optional[Coordinate]:
        query = text.strip()
        if not query:
            return None
        lang = self.cfg.lang_default
        key = f"geocode:{lang}:{query.lower()}"
        hit, cached = self._cache_get(key)
        if hit:
            return cached

        self.cfg.require_geoapify()
        payload = self._search({"text": query, "limit": 1, "lang": lang})
        features = payload.get("features") or []
        result: Optional[Coordinate] = None
        if features:
            props = features[0].get("properties") or {}
            lon = props.get("lon")
            lat = props.get("lat")
            if lon is not None and lat is not None:
                result = Coordinate(latitude=float(lat), longitude=float(lon))
        self._cache_set(key, result)
        return result
