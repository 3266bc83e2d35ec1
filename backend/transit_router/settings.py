from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Validated settings (env-driven), keeping config out of code for easy extension."""

    model_config = SettingsConfigDict(
        # Support both "repo root/.env" and "backend/.env" (local dev)
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    osrm_base_url: str = Field(default="https://router.project-osrm.org", alias="OSRM_BASE_URL")
    osrm_profile: str = Field(default="driving", alias="OSRM_PROFILE")
    osrm_timeout_s: float = Field(default=10.0, ge=0.5, le=120.0, alias="OSRM_TIMEOUT_S")
    osrm_connect_timeout_s: float = Field(default=5.0, ge=0.1, le=60.0, alias="OSRM_CONNECT_TIMEOUT_S")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_dir: str = Field(default="", alias="LOG_DIR")

    # Used when a single station pair cannot be resolved through OSRM.
    fallback_segment_duration_min: float = Field(default=5.0, ge=0.0, alias="FALLBACK_SEGMENT_DURATION_MIN")
    fallback_segment_distance_km: float = Field(default=2.0, ge=0.0, alias="FALLBACK_SEGMENT_DISTANCE_KM")

    transfer_radius_km: float = Field(default=0.3, ge=0.0, alias="TRANSFER_RADIUS_KM")
    transfer_weight_min: float = Field(default=5.0, ge=0.0, alias="TRANSFER_WEIGHT_MIN")

    default_transport_mode: str = Field(default="transjakarta", alias="DEFAULT_TRANSPORT_MODE")
    default_route_color: str = Field(default="#d32f2f", alias="DEFAULT_ROUTE_COLOR")


settings = Settings()
