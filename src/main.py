from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from loguru import logger
from pydantic import BaseModel, Field

from config import Configuration
from models import Coordinate, MapSnapshot, SortOrder, Spot, Viewport
from services.geocoding import GeoapifyGeocoder
from services.map_state import MapState
from services.session import SessionManager
from services.social_repository import SocialRepository
from services.spot_repository import SpotRepository
from services.store import DocumentStore, InMemoryStore
from services.viewport import ViewportReconciler, ViewportStore


app = FastAPI(title="Chai Map (personalized)")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/favicon.ico")
def favicon() -> Response:
    # Avoid noisy 404 in logs if browser asks for favicon
    return Response(status_code=204)


def build_store(cfg: Configuration) -> DocumentStore:
    if cfg.store_backend == "firestore":
        from services.firestore_store import FirestoreStore, get_firestore_client

        return FirestoreStore(get_firestore_client(cfg))
    return InMemoryStore()


def build_sessions(cfg: Configuration, store: Optional[DocumentStore] = None) -> SessionManager:
    store = store if store is not None else build_store(cfg)
    spot_repo = SpotRepository(store, cfg)
    social = SocialRepository(store, cfg)
    geocoder = GeoapifyGeocoder(cfg) if cfg.geoapify_api_key else None
    viewport_store = ViewportStore(cfg.viewport_store_path)
    # outlives sessions; supplies last_known to a recreated state
    reconcilers: Dict[str, ViewportReconciler] = {}

    def factory(uid: str) -> MapState:
        previous = reconcilers.get(uid)
        reconciler = ViewportReconciler(
            cfg,
            viewport_store,
            uid=uid,
            last_known=previous.last_known if previous else None,
        )
        reconcilers[uid] = reconciler
        return MapState(uid, cfg, spots=spot_repo, social=social, viewport=reconciler, geocoder=geocoder)

    return SessionManager(factory, ttl_sec=cfg.session_ttl_sec)


sessions: Optional[SessionManager] = None


def _state(uid: str) -> MapState:
    global sessions
    if sessions is None:
        cfg = Configuration.from_env()
        logger.info("cfg: {}", cfg.log_summary())
        sessions = build_sessions(cfg)
    try:
        state = sessions.get(uid)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    state.start()
    return state


class SpotPayload(BaseModel):
    id: str
    name: str
    address: str
    latitude: float
    longitude: float
    chai_types: List[str] = []
    average_rating: float = 0.0
    rating_count: int = 0
    score: float = 0.0
    personalized: bool = False


class ViewportPayload(BaseModel):
    latitude: float
    longitude: float
    latitude_delta: float = Field(..., gt=0)
    longitude_delta: float = Field(..., gt=0)


class SnapshotResponse(BaseModel):
    spots: List[SpotPayload]
    personalized_ids: List[str]
    viewport: Optional[ViewportPayload]
    sort_order: SortOrder
    show_personalized_only: bool
    show_community_spots: bool
    search_text: str
    reason_text: Optional[str]
    total_spots: int
    version: int


class FilterRequest(BaseModel):
    personalized_only: bool = True
    community_spots: bool = True


class SortRequest(BaseModel):
    order: SortOrder


class SearchRequest(BaseModel):
    text: str = ""


class SubsetRequest(BaseModel):
    ids: List[str]


class LocationRequest(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class CreateSpotRequest(BaseModel):
    name: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    chai_types: List[str] = []
    rating: int = Field(..., ge=1, le=5)
    creaminess_rating: Optional[int] = Field(None, ge=1, le=5)
    strength_rating: Optional[int] = Field(None, ge=1, le=5)
    flavor_notes: List[str] = []


class RatingRequest(BaseModel):
    spot_id: str
    value: int = Field(..., ge=1, le=5)
    creaminess_rating: Optional[int] = Field(None, ge=1, le=5)
    strength_rating: Optional[int] = Field(None, ge=1, le=5)
    flavor_notes: List[str] = []
    comment: Optional[str] = None
    visibility: str = Field("public", pattern="^(public|friends|private)$")


def _to_viewport_payload(viewport: Optional[Viewport]) -> Optional[ViewportPayload]:
    if viewport is None:
        return None
    return ViewportPayload(
        latitude=viewport.latitude,
        longitude=viewport.longitude,
        latitude_delta=viewport.latitude_delta,
        longitude_delta=viewport.longitude_delta,
    )


def _to_spot_payload(spot: Spot, snap: MapSnapshot) -> SpotPayload:
    return SpotPayload(
        id=spot.id,
        name=spot.name,
        address=spot.address,
        latitude=spot.latitude,
        longitude=spot.longitude,
        chai_types=list(spot.chai_types),
        average_rating=spot.average_rating,
        rating_count=spot.rating_count,
        score=round(snap.scores.get(spot.id, 0.0), 2),
        personalized=spot.id in snap.personalized_ids,
    )


def _respond(snap: MapSnapshot) -> SnapshotResponse:
    return SnapshotResponse(
        spots=[_to_spot_payload(s, snap) for s in snap.displayed],
        personalized_ids=sorted(snap.personalized_ids),
        viewport=_to_viewport_payload(snap.viewport),
        sort_order=snap.sort_order,
        show_personalized_only=snap.filters.show_personalized_only,
        show_community_spots=snap.filters.show_community_spots,
        search_text=snap.search_text,
        reason_text=snap.reason_text,
        total_spots=len(snap.spots),
        version=snap.version,
    )


@app.get("/healthz")
def healthz() -> dict:
    return {"status": "ok"}


@app.get("/users/{uid}/map", response_model=SnapshotResponse)
async def get_map(uid: str) -> SnapshotResponse:
    return _respond(_state(uid).snapshot)


@app.post("/users/{uid}/map/reload", response_model=SnapshotResponse)
async def reload_map(uid: str) -> SnapshotResponse:
    try:
        snap = await _state(uid).reload()
    except Exception as exc:
        logger.exception("reload failed: {}", exc)
        raise HTTPException(status_code=500, detail="internal error")
    return _respond(snap)


@app.post("/users/{uid}/map/personalization/refresh", response_model=SnapshotResponse)
async def refresh_personalization(uid: str) -> SnapshotResponse:
    return _respond(await _state(uid).refresh_personalization())


@app.put("/users/{uid}/map/filters", response_model=SnapshotResponse)
async def set_filters(uid: str, req: FilterRequest) -> SnapshotResponse:
    return _respond(_state(uid).set_filter(req.personalized_only, req.community_spots))


@app.put("/users/{uid}/map/sort", response_model=SnapshotResponse)
async def set_sort(uid: str, req: SortRequest) -> SnapshotResponse:
    return _respond(_state(uid).set_sort_order(req.order))


@app.post("/users/{uid}/map/search", response_model=SnapshotResponse)
async def search(uid: str, req: SearchRequest) -> SnapshotResponse:
    return _respond(await _state(uid).search(req.text))


@app.post("/users/{uid}/map/fit", response_model=SnapshotResponse)
async def fit_all(uid: str) -> SnapshotResponse:
    return _respond(_state(uid).fit_to_all())


@app.post("/users/{uid}/map/fit-subset", response_model=SnapshotResponse)
async def fit_subset(uid: str, req: SubsetRequest) -> SnapshotResponse:
    return _respond(_state(uid).fit_to_subset(req.ids))


@app.post("/users/{uid}/map/location", response_model=SnapshotResponse)
async def update_location(uid: str, req: LocationRequest) -> SnapshotResponse:
    return _respond(_state(uid).update_location(Coordinate(req.latitude, req.longitude)))


@app.post("/users/{uid}/map/viewport", response_model=SnapshotResponse)
async def user_moved(uid: str, req: ViewportPayload) -> SnapshotResponse:
    viewport = Viewport(
        latitude=req.latitude,
        longitude=req.longitude,
        latitude_delta=req.latitude_delta,
        longitude_delta=req.longitude_delta,
    )
    return _respond(_state(uid).user_moved_map(viewport))


@app.get("/users/{uid}/map/spots/{spot_id}/explanation")
async def explain_spot(uid: str, spot_id: str) -> Dict[str, Any]:
    detail = _state(uid).explain(spot_id)
    if detail is None:
        raise HTTPException(status_code=404, detail=f"unknown spot {spot_id}")
    return detail


@app.post("/users/{uid}/map/spots", status_code=201)
async def create_spot(uid: str, req: CreateSpotRequest) -> Dict[str, bool]:
    ok = await _state(uid).create_spot(
        name=req.name,
        address=req.address,
        latitude=req.latitude,
        longitude=req.longitude,
        chai_types=req.chai_types,
        rating=req.rating,
        creaminess_rating=req.creaminess_rating,
        strength_rating=req.strength_rating,
        flavor_notes=req.flavor_notes or None,
    )
    if not ok:
        raise HTTPException(status_code=502, detail="could not save spot")
    return {"ok": True}


@app.post("/users/{uid}/map/ratings", status_code=201)
async def submit_rating(uid: str, req: RatingRequest) -> Dict[str, bool]:
    ok = await _state(uid).submit_rating(
        spot_id=req.spot_id,
        value=req.value,
        creaminess_rating=req.creaminess_rating,
        strength_rating=req.strength_rating,
        flavor_notes=req.flavor_notes or None,
        comment=req.comment,
        visibility=req.visibility,
    )
    if not ok:
        raise HTTPException(status_code=502, detail="could not save rating")
    return {"ok": True}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8010, reload=True)
