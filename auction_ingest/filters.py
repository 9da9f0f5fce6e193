# auction_ingest/filters.py
"""Batch dedup and per-listing business filters.

Filters return a ``FilterDecision`` value; a rejected listing carries the
reason code that ends up in the run's rejection histogram.
"""
import calendar
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from .normalize import normalize_status, parse_timestamp
from .schemas import CanonicalListing, RejectReason

RAW_STATUS_KEYS = ("auctionStatus", "status", "state")
RAW_SALE_DATE_KEYS = ("sale_date", "saleDate", "endedAt", "ended_at", "soldAt", "sold_at", "scrapedTimestamp")


@dataclass(frozen=True)
class FilterDecision:
    keep: bool
    reason: Optional[RejectReason] = None


KEEP = FilterDecision(keep=True)


@dataclass(frozen=True)
class SoldWindowFilter:
    sold_only: bool = False
    sold_within_months: Optional[int] = None

    @property
    def active(self) -> bool:
        return self.sold_only or bool(self.sold_within_months)


def dedupe(listings: Iterable[CanonicalListing]) -> List[CanonicalListing]:
    """Keep the first listing per (source, source_id, source_url), in input order."""
    unique: List[CanonicalListing] = []
    seen = set()
    for listing in listings:
        key = listing.identity_key
        if key in seen:
            continue
        seen.add(key)
        unique.append(listing)
    return unique


def evaluate_active_only(listing: CanonicalListing) -> FilterDecision:
    if listing.status != "active":
        return FilterDecision(keep=False, reason=RejectReason.NOT_ACTIVE)
    return KEEP


def evaluate_sold_window(listing: CanonicalListing, rule: SoldWindowFilter,
                         now: Optional[datetime] = None) -> FilterDecision:
    if not rule.active:
        return KEEP
    if not is_sold_or_ended(listing):
        return FilterDecision(keep=False, reason=RejectReason.NOT_SOLD)
    if not rule.sold_within_months:
        return KEEP

    sold_at = resolve_sale_date(listing)
    if sold_at is None:
        return FilterDecision(keep=False, reason=RejectReason.MISSING_SALE_DATE)
    cutoff = subtract_months(now or datetime.now(timezone.utc), rule.sold_within_months)
    if sold_at < cutoff:
        return FilterDecision(keep=False, reason=RejectReason.OUTSIDE_SOLD_WINDOW)
    return KEEP


def is_sold_or_ended(listing: CanonicalListing) -> bool:
    if listing.status == "sold":
        return True
    if listing.status == "unsold":
        return False
    raw = listing.raw_payload
    raw_status = next((raw[key] for key in RAW_STATUS_KEYS if raw.get(key) is not None), "")
    return normalize_status(str(raw_status)) == "sold"


def resolve_sale_date(listing: CanonicalListing) -> Optional[datetime]:
    candidates = [listing.sale_date] + [listing.raw_payload.get(key) for key in RAW_SALE_DATE_KEYS]
    for candidate in candidates:
        if candidate is None:
            continue
        parsed = parse_timestamp(candidate)
        if parsed:
            return parsed
    return None


def subtract_months(moment: datetime, months: int) -> datetime:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    total = moment.year * 12 + (moment.month - 1) - months
    year, month_index = divmod(total, 12)
    day = min(moment.day, calendar.monthrange(year, month_index + 1)[1])
    return moment.replace(year=year, month=month_index + 1, day=day)
