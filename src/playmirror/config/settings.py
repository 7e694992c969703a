"""Application settings.

Hey future me - all configuration flows through this module! Values come from
environment variables (prefix PLAYMIRROR_, nested groups with "__") or a .env file.

Examples:
    PLAYMIRROR_DATABASE__URL=sqlite+aiosqlite:///./data/playmirror.db
    PLAYMIRROR_SYNC__CALL_INTERVAL_MS=500
    PLAYMIRROR_MATCHING__ACCEPT_SCORE=0.75

The sync/matching groups are FROZEN models. Workers and services receive them once
at construction and never mutate them - if you need different values in a test,
build a new instance instead of patching attributes.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseModel):
    """Local store connection settings."""

    url: str = Field(
        default="sqlite+aiosqlite:///./data/playmirror.db",
        description="sqlite+aiosqlite URL of the local store",
    )
    echo: bool = Field(default=False, description="Echo SQL statements")


class SyncSettings(BaseModel):
    """Outbox drain settings.

    Hey future me - the defaults are deliberately SLOW. The remote platform flags
    accounts that write in bursts, so one drain at a time with 300ms between
    calls is the safe baseline. Raise these only if you know the remote limits.
    """

    model_config = ConfigDict(frozen=True)

    max_concurrent_drains: int = Field(
        default=1, ge=1, description="Global bound on concurrently draining playlists"
    )
    call_interval_ms: int = Field(
        default=300, ge=0, description="Minimum spacing between remote write calls"
    )
    batch_size: int = Field(
        default=20, ge=1, description="Maximum ids per add/remove call"
    )
    completed_retention_hours: int = Field(
        default=24 * 7, ge=0, description="How long completed entries are kept"
    )


class MatchingSettings(BaseModel):
    """Fingerprint matcher tuning."""

    model_config = ConfigDict(frozen=True)

    duration_sigma: float = Field(default=4.0, gt=0)
    title_weight: float = Field(default=0.4, ge=0)
    duration_weight: float = Field(default=0.6, ge=0)
    artist_bonus: float = Field(default=0.1, ge=0)
    exact_duration_window: float = Field(default=3.0, ge=0)
    max_duration_delta: float = Field(default=180.0, gt=0)
    top_k: int = Field(default=5, ge=1)
    min_score: float = Field(default=0.4, ge=0, le=1)
    accept_score: float = Field(default=0.7, ge=0, le=1)
    ambiguity_margin: float = Field(default=0.05, ge=0)
    # Remote categories (upload zones) whose hits are dropped / boosted before ranking
    blocked_categories: tuple[str, ...] = ()
    priority_categories: tuple[str, ...] = ()
    priority_boost: float = Field(default=1.1, ge=1.0)


class ImporterSettings(BaseModel):
    """External playlist importer settings."""

    model_config = ConfigDict(frozen=True)

    search_interval_ms: int = Field(
        default=1200, ge=0, description="Anti-ban delay between remote searches"
    )
    include_artist_in_query: bool = Field(default=True)
    http_timeout: float = Field(default=15.0, gt=0)


class ObservabilitySettings(BaseModel):
    """Logging settings."""

    log_json_format: bool = Field(default=False)


class Settings(BaseSettings):
    """Root settings object."""

    model_config = SettingsConfigDict(
        env_prefix="PLAYMIRROR_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = Field(default="playmirror")
    log_level: str = Field(default="INFO")

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    matching: MatchingSettings = Field(default_factory=MatchingSettings)
    importer: ImporterSettings = Field(default_factory=ImporterSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {value}")
        return level

    def _get_sqlite_db_path(self) -> Path | None:
        """Return the SQLite file path, or None for non-file databases."""
        url = self.database.url
        if "sqlite" not in url or ":memory:" in url:
            return None
        _, _, path = url.partition(":///")
        return Path(path) if path else None

    def ensure_directories(self) -> None:
        """Create the parent directory of the SQLite file if needed."""
        db_path = self._get_sqlite_db_path()
        if db_path is not None and str(db_path.parent) not in ("", "."):
            db_path.parent.mkdir(parents=True, exist_ok=True)


# Yo, lru_cache makes this a lazy singleton - env is parsed ONCE. Tests that need
# different settings should construct Settings(...) directly, not call this.
@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
