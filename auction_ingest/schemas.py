# auction_ingest/schemas.py
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Tuple
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from .sources import CanonicalSource

DEFAULT_MARQUE = "Porsche"
EARLIEST_PLAUSIBLE_YEAR = 1948
CHECKPOINT_VERSION = 1

ListingStatus = Literal["active", "sold", "unsold", "delisted", "draft"]
SourceSelector = Literal["bat", "carsandbids", "autoscout24", "classiccars", "all"]
RunMode = Literal["sample", "incremental", "backfill"]
FetchStrategy = Literal["delegated", "direct"]


class RejectReason(str, Enum):
    MISSING_REQUIRED_FIELDS = "missing_required_fields"
    NON_DOMAIN_MATCH = "non_domain_match"
    MISSING_YEAR_OR_MODEL = "missing_year_or_model"
    SCHEMA_VALIDATION_FAILED = "schema_validation_failed"
    NOT_ACTIVE = "not_active"
    NOT_SOLD = "not_sold"
    MISSING_SALE_DATE = "missing_sale_date"
    OUTSIDE_SOLD_WINDOW = "outside_sold_window"


def is_http_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


class CanonicalListing(BaseModel):
    """One normalized auction record, the unit of persistence.

    Validation context may carry ``marque`` and ``earliest_year``; without
    it the defaults for the tracked marque apply.
    """

    model_config = ConfigDict(frozen=True)

    source: CanonicalSource
    source_id: str = Field(..., min_length=1)
    source_url: str
    make: str
    model: str = Field(..., min_length=1)
    year: int
    title: str = Field(..., min_length=1)
    status: ListingStatus
    sale_date: Optional[date]
    vin: Optional[str] = Field(None, min_length=5)
    hammer_price: Optional[float] = Field(None, ge=0)
    current_bid: Optional[float] = Field(None, ge=0)
    bid_count: Optional[int] = Field(None, ge=0)
    final_price: Optional[float] = Field(None, ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    mileage: Optional[int] = Field(None, ge=0)
    mileage_unit: Literal["km", "miles"] = "km"
    country: str = Field("Unknown", min_length=1)
    region: Optional[str] = None
    city: Optional[str] = None
    auction_house: str = Field(..., min_length=1)
    description_text: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    raw_payload: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("source_url")
    @classmethod
    def _absolute_url(cls, value: str) -> str:
        if not is_http_url(value):
            raise ValueError("must be an absolute http(s) URL")
        return value

    @field_validator("images")
    @classmethod
    def _image_urls(cls, value: List[str]) -> List[str]:
        bad = [url for url in value if not is_http_url(url)]
        if bad:
            raise ValueError(f"invalid image URL(s): {bad[:3]}")
        return value

    @field_validator("make")
    @classmethod
    def _tracked_marque(cls, value: str, info: ValidationInfo) -> str:
        marque = (info.context or {}).get("marque", DEFAULT_MARQUE)
        if value != marque:
            raise ValueError(f"make must be {marque!r}")
        return value

    @field_validator("year")
    @classmethod
    def _plausible_year(cls, value: int, info: ValidationInfo) -> int:
        earliest = (info.context or {}).get("earliest_year", EARLIEST_PLAUSIBLE_YEAR)
        latest = datetime.now(timezone.utc).year + 1
        if not earliest <= value <= latest:
            raise ValueError(f"year must be between {earliest} and {latest}")
        return value

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: Optional[str]) -> Optional[str]:
        return value.upper() if value else value

    @property
    def identity_key(self) -> Tuple[str, str, str]:
        return (self.source.value, self.source_id, self.source_url)


class NormalizeReject(BaseModel):
    source: CanonicalSource
    reason: RejectReason
    raw: Dict[str, Any] = Field(default_factory=dict)
    details: Dict[str, Any] = Field(default_factory=dict)


class IngestOptions(BaseModel):
    """Per-run options, from CLI flags or the ``POST /ingest`` body."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    source: SourceSelector = "bat"
    mode: RunMode = "incremental"
    limit: int = Field(100, gt=0, le=5000)
    dry_run: bool = False
    fail_fast: bool = False
    sold_only: bool = False
    sold_within_months: Optional[int] = Field(None, gt=0, le=120)
    active_only: bool = False
    since: Optional[str] = None
    from_: Optional[str] = Field(None, alias="from")
    resume: Optional[str] = None
    strategy: FetchStrategy = "delegated"


class SourceCursor(BaseModel):
    last_cursor: Optional[str] = None
    last_seen_at: Optional[str] = None
    run_id: Optional[str] = None


class Checkpoint(BaseModel):
    version: int = CHECKPOINT_VERSION
    updated_at: str = datetime(1970, 1, 1, tzinfo=timezone.utc).isoformat()
    sources: Dict[str, SourceCursor] = Field(default_factory=dict)


class RunTotals(BaseModel):
    fetched: int = 0
    normalized: int = 0
    deduped: int = 0
    inserted: int = 0
    updated: int = 0
    rejected: int = 0
    errors: int = 0


class RunReport(BaseModel):
    run_id: str
    started_at: str
    finished_at: str
    mode: RunMode
    source: SourceSelector
    dry_run: bool
    totals: RunTotals
    rejection_reasons: Dict[str, int] = Field(default_factory=dict)
    errors: List[str] = Field(default_factory=list)
