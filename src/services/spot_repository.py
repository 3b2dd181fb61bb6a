from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Sequence

from loguru import logger

from config import Configuration
from models import Spot
from services.store import DocumentStore, SourceUnavailable, StoreError, WriteFailed
from utils import as_float, as_int

REQUIRED_SPOT_FIELDS = ("name", "address", "latitude", "longitude", "chaiTypes")


class MalformedRecord(ValueError):
    pass


def decode_spot(doc_id: str, data: Dict[str, Any]) -> Spot:
    """Validate a raw venue document and build a ``Spot``.

    Raises ``MalformedRecord`` when a required field is missing or has the
    wrong type. Aggregate rating fields are optional and default to zero.
    """
    missing = [f for f in REQUIRED_SPOT_FIELDS if data.get(f) is None]
    if missing:
        raise MalformedRecord(f"spot {doc_id} missing {', '.join(missing)}")

    name = data["name"]
    address = data["address"]
    lat = as_float(data["latitude"])
    lon = as_float(data["longitude"])
    chai_types = data["chaiTypes"]
    if not isinstance(name, str) or not isinstance(address, str):
        raise MalformedRecord(f"spot {doc_id} has non-text name/address")
    if lat is None or lon is None:
        raise MalformedRecord(f"spot {doc_id} has non-numeric coordinates")
    if not isinstance(chai_types, list) or not all(isinstance(t, str) for t in chai_types):
        raise MalformedRecord(f"spot {doc_id} has invalid chaiTypes")

    average = as_float(data.get("averageRating"))
    count = as_int(data.get("ratingCount"))
    return Spot(
        id=doc_id,
        name=name,
        address=address,
        latitude=lat,
        longitude=lon,
        chai_types=tuple(chai_types),
        average_rating=average if average is not None else 0.0,
        rating_count=max(count, 0) if count is not None else 0,
    )


def dedupe_spots(spots: Iterable[Spot]) -> List[Spot]:
    """Collapse spots sharing an id; the last record wins, first-seen order is kept."""
    merged: dict[str, Spot] = {}
    for spot in spots:
        merged[spot.id] = spot
    return list(merged.values())


class SpotRepository:
    def __init__(self, store: DocumentStore, cfg: Configuration) -> None:
        self.store = store
        self.cfg = cfg

    @property
    def sources(self) -> Sequence[str]:
        return (self.cfg.primary_spots_collection, self.cfg.secondary_spots_collection)

    async def _load_source(self, collection: str) -> List[Spot]:
        try:
            docs = await self.store.fetch_all(collection)
        except StoreError as exc:
            raise SourceUnavailable(f"{collection}: {exc}") from exc

        spots: list[Spot] = []
        dropped = 0
        for doc_id, data in docs:
            try:
                spots.append(decode_spot(doc_id, data))
            except MalformedRecord as exc:
                dropped += 1
                logger.debug("dropping malformed spot: {}", exc)
        if dropped:
            logger.info("{}: dropped {} malformed records", collection, dropped)
        return spots

    async def load_all(self) -> List[Spot]:
        """Load both venue collections and return the deduplicated canonical set."""
        combined: list[Spot] = []
        for collection in self.sources:
            try:
                combined.extend(await self._load_source(collection))
            except SourceUnavailable as exc:
                logger.warning("skipping venue source: {}", exc)
        canonical = dedupe_spots(combined)
        logger.info("loaded {} spots ({} raw records)", len(canonical), len(combined))
        return canonical

    async def create_spot(
        self,
        *,
        name: str,
        address: str,
        latitude: float,
        longitude: float,
        chai_types: Sequence[str],
        rating: int,
        creator_id: Optional[str] = None,
    ) -> Spot:
        """Write a new venue to the primary collection and mirror it to the secondary one.

        The new spot carries its creator's rating as the only rating.
        """
        data: Dict[str, Any] = {
            "name": name,
            "address": address,
            "latitude": float(latitude),
            "longitude": float(longitude),
            "chaiTypes": list(chai_types),
            "averageRating": float(rating),
            "ratingCount": 1,
        }
        if creator_id:
            data["creatorId"] = creator_id

        primary, secondary = self.sources
        try:
            doc_id = await self.store.add(primary, data)
        except StoreError as exc:
            raise WriteFailed(f"create spot in {primary}: {exc}") from exc

        try:
            await self.store.set(secondary, doc_id, data)
        except StoreError as exc:
            logger.warning("secondary write to {} failed for {}: {}", secondary, doc_id, exc)

        return decode_spot(doc_id, data)
