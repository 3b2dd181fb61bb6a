from __future__ import annotations

import os
from typing import Any, Optional

from pydantic import BaseModel, Field

from utils import mask_secret


class Configuration(BaseModel):
    # Geoapify (search box geocoding)
    geoapify_api_key: Optional[str] = Field(default=None)
    geoapify_base_url: str = Field(default="https://api.geoapify.com")
    geoapify_timeout: int = Field(default=15)
    lang_default: str = Field(default="en")

    # Document store
    store_backend: str = Field(default="memory")
    firestore_project: Optional[str] = Field(default=None)
    primary_spots_collection: str = Field(default="chaiFinder")
    secondary_spots_collection: str = Field(default="chaiSpots")
    ratings_collection: str = Field(default="ratings")
    users_collection: str = Field(default="users")

    # Personalization
    personalization_threshold: float = Field(default=3.5)

    # Map viewport
    interaction_cooldown_sec: float = Field(default=1.0)
    fit_padding_factor: float = Field(default=1.5)
    user_location_span: float = Field(default=0.05)
    single_spot_span: float = Field(default=0.01)
    default_latitude: float = Field(default=37.7749)
    default_longitude: float = Field(default=-122.4194)
    default_span: float = Field(default=0.1)
    viewport_store_path: Optional[str] = Field(default=None)

    # Search / sessions
    search_debounce_sec: float = Field(default=0.3)
    session_ttl_sec: int = Field(default=3600)

    @classmethod
    def from_env(cls, overrides: Optional[dict[str, Any]] = None) -> "Configuration":
        raw: dict[str, Any] = {}

        env_map = {
            "geoapify_api_key": os.getenv("GEOAPIFY_API_KEY"),
            "geoapify_base_url": os.getenv("GEOAPIFY_BASE_URL"),
            "geoapify_timeout": os.getenv("GEOAPIFY_TIMEOUT"),
            "lang_default": os.getenv("LANG_DEFAULT"),
            "store_backend": os.getenv("STORE_BACKEND"),
            "firestore_project": os.getenv("FIRESTORE_PROJECT"),
            "primary_spots_collection": os.getenv("PRIMARY_SPOTS_COLLECTION"),
            "secondary_spots_collection": os.getenv("SECONDARY_SPOTS_COLLECTION"),
            "ratings_collection": os.getenv("RATINGS_COLLECTION"),
            "users_collection": os.getenv("USERS_COLLECTION"),
            "personalization_threshold": os.getenv("PERSONALIZATION_THRESHOLD"),
            "interaction_cooldown_sec": os.getenv("INTERACTION_COOLDOWN_SEC"),
            "fit_padding_factor": os.getenv("FIT_PADDING_FACTOR"),
            "user_location_span": os.getenv("USER_LOCATION_SPAN"),
            "single_spot_span": os.getenv("SINGLE_SPOT_SPAN"),
            "default_latitude": os.getenv("DEFAULT_LATITUDE"),
            "default_longitude": os.getenv("DEFAULT_LONGITUDE"),
            "default_span": os.getenv("DEFAULT_SPAN"),
            "viewport_store_path": os.getenv("VIEWPORT_STORE_PATH"),
            "search_debounce_sec": os.getenv("SEARCH_DEBOUNCE_SEC"),
            "session_ttl_sec": os.getenv("SESSION_TTL_SEC"),
        }

        for k, v in env_map.items():
            if v is None:
                continue
            raw[k] = v

        if overrides:
            raw.update({k: v for k, v in overrides.items() if v is not None})

        return cls(**raw)

    def require_geoapify(self) -> None:
        if not self.geoapify_api_key:
            raise ValueError("GEOAPIFY_API_KEY is required")

    def log_summary(self) -> str:
        return (
            "store=%s primary=%s secondary=%s geoapify=%s api_key=%s threshold=%.2f viewport_store=%s"
            % (
                self.store_backend,
                self.primary_spots_collection,
                self.secondary_spots_collection,
                bool(self.geoapify_api_key),
                mask_secret(self.geoapify_api_key),
                self.personalization_threshold,
                self.viewport_store_path or "memory",
            )
        )
