"""Application configuration and settings management."""

from typing import Any, Literal, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="ROUTE_TRACKER_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Delivery Route Tracker API"
    api_prefix: str = "/api"

    routes_api_url: Optional[str] = Field(
        default=None,
        description="Endpoint of the routing/optimization service (e.g., http://localhost:3000/api/routes).",
    )
    routes_api_key: Optional[str] = Field(
        default=None,
        description="API key sent to the routing service when it is called directly.",
    )
    route_timeout_seconds: float = Field(default=15.0, gt=0.0)
    route_debounce_seconds: float = Field(
        default=10.0,
        ge=0.0,
        description="Minimum time between two recalculation attempts.",
    )
    off_route_threshold_m: float = Field(default=150.0, gt=0.0)
    coordinate_tolerance_deg: float = Field(
        default=1e-4,
        gt=0.0,
        description="Tolerance used when matching waypoints back to deliveries (~11 m).",
    )
    route_from_current_position: bool = Field(
        default=False,
        description="Route from the driver's last position instead of the shift origin.",
    )

    location_accuracy: Literal["lowest", "low", "balanced", "high", "highest"] = "high"
    location_interval_seconds: float = Field(default=15.0, ge=0.0)
    location_min_displacement_m: float = Field(default=20.0, ge=0.0)

    average_speed_kmh: float = Field(default=40.0, gt=0.0)

    assignments_api_url: Optional[str] = Field(
        default=None,
        description="Endpoint returning the day's package assignments for a vehicle.",
    )
    assignments_timeout_seconds: float = Field(default=10.0, gt=0.0)

    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:8081",
            "http://127.0.0.1:8081",
            "http://localhost:19006",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    @field_validator("frontend_allowed_origins", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return tuple(str(item) for item in parsed)
            except (json.JSONDecodeError, TypeError):
                pass
            if "," in value:
                return tuple(item.strip() for item in value.split(",") if item.strip())
            if value.strip():
                return (value.strip(),)
        return tuple()


settings = Settings()
