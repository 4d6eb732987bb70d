"""
Client configuration for the heat-map screen.

Every knob here can be overridden by an environment variable of the same
name (upper-cased) or by a .env file in the working directory. The API
token comes from the environment only.

New fields go here and into .env.example.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # ─── Core ──────────────────────────────────────────────────────
    environment: str = "development"
    debug: bool = False

    # ─── Backend API ───────────────────────────────────────────────
    # Local dev default matches the Docker Compose api service.
    api_base_url: str = "http://localhost:3000/api/v1"
    api_token: str = ""
    request_timeout_seconds: float = 10.0

    # When True, the gateway returns deterministic canned clusters.
    # Use for tests and local dev without a running backend.
    geo_mock_mode: bool = False

    # ─── Heat map screen ───────────────────────────────────────────
    default_radius_km: int = 50
    max_clusters: int = 50
    camera_settle_ms: int = 300

    # Initial layer toggles. Clusters are on by default so individual
    # locations are never the first thing a user sees.
    show_heatmap_layer: bool = False
    show_cluster_layer: bool = True

    # ─── Location tracking ─────────────────────────────────────────
    location_update_threshold_km: float = 1.0
    location_min_update_minutes: int = 5
    location_max_update_minutes: int = 60

    @property
    def camera_settle_seconds(self) -> float:
        return self.camera_settle_ms / 1000.0

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # Don't fail on unknown env vars
    )


# Module-level singleton — import this everywhere instead of instantiating Settings()
settings = Settings()
