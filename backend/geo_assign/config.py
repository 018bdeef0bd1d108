"""
config.py - Runtime settings for the constituency assignment service.

All values come from environment variables (or a local ``.env`` file) so
that the same build can point at different boundary files and databases.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_DATA_DIR = Path(__file__).resolve().parent.parent / "data"

# Creation-time value of state / constituency fields on a new report.
PENDING_SENTINEL = "Pending Assignment"

# Upper bound on any persisted name field.
MAX_NAME_LENGTH = 100


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    database_url: str = Field(
        default="sqlite:///./geo_assign.db",
        description="SQLAlchemy connection string for reports and reference tables",
    )

    assembly_geojson_path: Path = Field(
        default=_DATA_DIR / "India_AC.json",
        description="GeoJSON FeatureCollection of assembly constituency boundaries",
    )
    parliamentary_geojson_path: Path = Field(
        default=_DATA_DIR / "india_pc_2019_simplified.geojson",
        description="GeoJSON FeatureCollection of parliamentary constituency boundaries",
    )

    mla_data_path: Path | None = Field(
        default=_DATA_DIR / "mla_data.json",
        description="Optional JSON seed for the MLA reference table",
    )
    mp_data_path: Path | None = Field(
        default=_DATA_DIR / "mp_data.json",
        description="Optional JSON seed for the MP reference table",
    )

    log_level: str = Field(default="INFO", description="Root logging level")
    cors_allow_origins: list[str] = Field(default_factory=lambda: ["*"])


@lru_cache
def get_settings() -> Settings:
    """Return the cached settings instance."""
    return Settings()
