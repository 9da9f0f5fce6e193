# auction_ingest/config.py
"""Runtime configuration.

All environment parsing lives here. Entry points build one ``Settings``
value at startup and pass it to every component; nothing else reads
``os.environ``.
"""
import os
from pathlib import Path
from typing import Dict, Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

from .errors import IngestConfigError
from .sources import SOURCE_PROFILES, SourceKey, resolve_sources

DEFAULT_RUNS_DIR = Path("var/runs/auction-ingest")
ENV_FILES = (".env.local", ".env")
_TRUE_VALUES = {"1", "true", "yes", "on"}


def load_env_files(files=ENV_FILES):
    """Fill missing environment variables from local env files, never overriding."""
    for env_file in files:
        if os.path.exists(env_file):
            load_dotenv(env_file, override=False)


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    apify_token: Optional[str] = None
    actor_ids: Dict[SourceKey, str] = Field(default_factory=dict)
    apify_wait_seconds: int = 120

    database_url: Optional[str] = None
    db_pool_size: int = 5
    db_max_overflow: int = 10

    marque: str = "Porsche"
    earliest_year: int = 1948

    runs_dir: Path = DEFAULT_RUNS_DIR
    checkpoint_path: Optional[Path] = None

    request_timeout_seconds: float = 30.0
    domain_interval_seconds: float = 1.5
    headless: bool = True
    scrape_details: bool = True

    log_level: str = "INFO"
    cron_secret: Optional[str] = None
    schedule_interval_hours: Optional[float] = None

    @property
    def resolved_checkpoint_path(self) -> Path:
        return self.checkpoint_path or self.runs_dir / "checkpoints.json"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from the process environment (or a given mapping).

        Raises:
            IngestConfigError: if a numeric variable cannot be parsed.
        """
        env = os.environ if environ is None else environ
        actor_ids = {}
        for key, profile in SOURCE_PROFILES.items():
            value = _clean(env.get(profile.actor_env_var))
            if value:
                actor_ids[key] = value
        runs_dir = Path(env.get("INGEST_RUNS_DIR") or DEFAULT_RUNS_DIR).expanduser()
        checkpoint = _clean(env.get("INGEST_CHECKPOINT_PATH"))
        schedule = _clean(env.get("INGEST_SCHEDULE_HOURS"))
        return cls(
            apify_token=_clean(env.get("APIFY_TOKEN")),
            actor_ids=actor_ids,
            apify_wait_seconds=_parse_int(env, "APIFY_WAIT_SECONDS", 120),
            database_url=normalize_database_url(_clean(env.get("POSTGRES_URL"))),
            db_pool_size=_parse_int(env, "DB_POOL_SIZE", 5),
            db_max_overflow=_parse_int(env, "DB_MAX_OVERFLOW", 10),
            marque=_clean(env.get("INGEST_MARQUE")) or "Porsche",
            earliest_year=_parse_int(env, "INGEST_EARLIEST_YEAR", 1948),
            runs_dir=runs_dir,
            checkpoint_path=Path(checkpoint).expanduser() if checkpoint else None,
            request_timeout_seconds=_parse_float(env, "INGEST_REQUEST_TIMEOUT", 30.0),
            domain_interval_seconds=_parse_float(env, "INGEST_DOMAIN_INTERVAL", 1.5),
            headless=_parse_bool(env, "HEADLESS", True),
            scrape_details=_parse_bool(env, "INGEST_SCRAPE_DETAILS", True),
            log_level=(_clean(env.get("LOG_LEVEL")) or "INFO").upper(),
            cron_secret=_clean(env.get("CRON_SECRET")),
            schedule_interval_hours=_parse_float(env, "INGEST_SCHEDULE_HOURS", None) if schedule else None,
        )


def normalize_database_url(url: Optional[str]) -> Optional[str]:
    # SQLAlchemy 2.x doesn't accept 'postgres://'
    if url and url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+psycopg2://", 1)
    return url


def validate_run_config(settings: Settings, options) -> None:
    """Fail before any source runs when a run cannot possibly succeed.

    Writes need a store URL unless the run is a dry run; backfills always
    need one. The delegated strategy needs the Apify token and an actor id
    for every requested source.
    """
    if not options.dry_run and not settings.database_url:
        raise IngestConfigError("POSTGRES_URL is required unless --dry-run is set")
    if options.mode == "backfill" and not settings.database_url:
        raise IngestConfigError("Backfill mode requires a write-capable POSTGRES_URL")
    if options.strategy != "delegated":
        return
    if not settings.apify_token:
        raise IngestConfigError("APIFY_TOKEN is required for the delegated fetch strategy")
    missing = [
        SOURCE_PROFILES[key].actor_env_var
        for key in resolve_sources(options.source)
        if key not in settings.actor_ids
    ]
    if missing:
        raise IngestConfigError(f"Missing actor id configuration: {', '.join(missing)}")


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _parse_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = _clean(env.get(name))
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as error:
        raise IngestConfigError(f"Invalid {name} value: expected integer, got '{raw}'") from error


def _parse_float(env: Mapping[str, str], name: str, default):
    raw = _clean(env.get(name))
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError as error:
        raise IngestConfigError(f"Invalid {name} value: expected number, got '{raw}'") from error


def _parse_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = _clean(env.get(name))
    if raw is None:
        return default
    return raw.lower() in _TRUE_VALUES
