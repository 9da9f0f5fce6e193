# auction_ingest/crud.py
"""Idempotent persistence of canonical listings.

The primary ``listings`` row is written in one transaction; each child
table row is written in its own transaction afterwards, so a failing child
turns into a warning instead of losing the listing.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import RepositoryWriteError
from .models import (
    AuctionInfo,
    Listing,
    LocationData,
    PhotoMedia,
    PriceHistory,
    Pricing,
    ProvenanceData,
    VehicleSpecs,
)
from .schemas import CanonicalListing
from .utils import get_logger

logger = get_logger(__name__)

TERMINAL_STATUSES = frozenset({"sold", "unsold", "delisted"})
PRICE_COLUMNS = {"USD": "price_usd", "EUR": "price_eur", "GBP": "price_gbp"}


@dataclass
class WriteResult:
    inserted: int = 0
    updated: int = 0
    warnings: List[str] = field(default_factory=list)


def merge_status(stored: Optional[str], incoming: str) -> str:
    """Status only moves forward: a closed listing never reopens."""
    if stored in TERMINAL_STATUSES and incoming in ("active", "draft"):
        return stored
    return incoming


def hour_bucket(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).replace(minute=0, second=0, microsecond=0)


def _insert_for(db: Session):
    # ON CONFLICT exists on both dialects but lives in dialect-specific constructs
    return sqlite_insert if db.get_bind().dialect.name == "sqlite" else pg_insert


def _error_message(error: SQLAlchemyError) -> str:
    return str(getattr(error, "orig", None) or error).strip()


class ListingWriter:
    def __init__(self, session_factory: Optional[Callable[[], Session]],
                 clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)):
        self._session_factory = session_factory
        self._clock = clock

    def upsert(self, listing: CanonicalListing, dry_run: bool = False) -> WriteResult:
        if dry_run:
            return WriteResult()
        if self._session_factory is None:
            raise RepositoryWriteError("No database configured for writes")

        now = self._clock()
        with self._session_factory() as db:
            try:
                listing_id, inserted, status = self._upsert_listing(db, listing, now)
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise RepositoryWriteError(f"listings upsert failed: {_error_message(e)}") from e

        warnings: List[str] = []
        self._upsert_children(listing_id, listing, status, now, warnings)
        return WriteResult(inserted=1 if inserted else 0, updated=0 if inserted else 1, warnings=warnings)

    # ------------------------------------------------------------------
    # listings
    # ------------------------------------------------------------------

    def _upsert_listing(self, db: Session, listing: CanonicalListing,
                        now: datetime) -> Tuple[int, bool, str]:
        source = listing.source.value
        existing = db.execute(
            select(Listing.id, Listing.status)
            .where(Listing.source == source, Listing.source_id == listing.source_id)
            .limit(1)
        ).first()

        if existing is None:
            by_url = db.execute(
                select(Listing.id, Listing.status).where(Listing.source_url == listing.source_url).limit(1)
            ).first()
            if by_url is not None:
                # same listing re-keyed by the marketplace; keep the row, take the new identity
                row = self._listing_row(listing, now, stored_status=by_url.status)
                db.execute(update(Listing).where(Listing.id == by_url.id).values(**row))
                return by_url.id, False, row["status"]

        row = self._listing_row(listing, now, stored_status=existing.status if existing else None)
        stmt = _insert_for(db)(Listing.__table__).values(**row)
        stmt = stmt.on_conflict_do_update(
            index_elements=["source", "source_id"],
            set_={name: stmt.excluded[name] for name in row if name not in ("source", "source_id")},
        )
        db.execute(stmt)
        listing_id = db.execute(
            select(Listing.id).where(Listing.source == source, Listing.source_id == listing.source_id)
        ).scalar_one()
        return listing_id, existing is None, row["status"]

    @staticmethod
    def _listing_row(listing: CanonicalListing, now: datetime, stored_status: Optional[str]) -> Dict[str, Any]:
        return {
            "source": listing.source.value,
            "source_id": listing.source_id,
            "source_url": listing.source_url,
            "title": listing.title,
            "make": listing.make,
            "model": listing.model,
            "year": listing.year,
            "status": merge_status(stored_status, listing.status),
            "sale_date": listing.sale_date,
            "hammer_price": listing.hammer_price,
            "current_bid": listing.current_bid,
            "bid_count": listing.bid_count or 0,
            "final_price": listing.final_price if listing.final_price is not None else listing.hammer_price,
            "original_currency": listing.currency,
            "mileage": listing.mileage,
            "mileage_unit": listing.mileage_unit,
            "vin": listing.vin,
            "country": listing.country,
            "region": listing.region,
            "city": listing.city,
            "auction_house": listing.auction_house,
            "description_text": listing.description_text,
            "images": list(listing.images),
            "photos_count": len(listing.images),
            "raw_payload": listing.raw_payload,
            "updated_at": now,
            "scrape_timestamp": now,
        }

    # ------------------------------------------------------------------
    # child tables
    # ------------------------------------------------------------------

    def _upsert_children(self, listing_id: int, listing: CanonicalListing, status: str,
                         now: datetime, warnings: List[str]) -> None:
        realized = _first_price(listing.final_price, listing.hammer_price, listing.current_bid)
        self._safe_upsert(Pricing, {
            "listing_id": listing_id,
            "original_currency": listing.currency,
            "amount_original": realized,
            "amount_usd": realized if listing.currency == "USD" else None,
        }, warnings)
        self._safe_upsert(VehicleSpecs, {
            "listing_id": listing_id,
            "make": listing.make,
            "model": listing.model,
            "year": listing.year,
            "vin": listing.vin,
            "mileage": listing.mileage,
            "mileage_unit": listing.mileage_unit,
        }, warnings)
        self._safe_upsert(AuctionInfo, {
            "listing_id": listing_id,
            "auction_house": listing.auction_house,
            "status": status,
            "number_of_bids": listing.bid_count or 0,
            "final_price": _first_price(listing.final_price, listing.hammer_price),
            "sale_date": listing.sale_date,
        }, warnings)
        self._safe_upsert(LocationData, {
            "listing_id": listing_id,
            "country": listing.country,
            "region": listing.region,
            "city": listing.city,
        }, warnings)
        self._safe_upsert(ProvenanceData, {
            "listing_id": listing_id,
            "seller_name": None,
            "ownership_count": None,
        }, warnings)
        for position, photo_url in enumerate(listing.images):
            self._safe_upsert(PhotoMedia, {
                "listing_id": listing_id,
                "photo_url": photo_url,
                "photo_order": position,
            }, warnings, conflict=("listing_id", "photo_url"))

        point = {
            "listing_id": listing_id,
            "time": hour_bucket(now),
            "status": status,
            "price_usd": None,
            "price_eur": None,
            "price_gbp": None,
        }
        column = PRICE_COLUMNS.get(listing.currency or "")
        if column:
            point[column] = _first_price(listing.current_bid, listing.hammer_price, listing.final_price)
        self._safe_upsert(PriceHistory, point, warnings, conflict=("listing_id", "time"))

    def _safe_upsert(self, model, row: Dict[str, Any], warnings: List[str],
                     conflict: Sequence[str] = ("listing_id",)) -> None:
        table = model.__table__
        with self._session_factory() as db:
            try:
                stmt = _insert_for(db)(table).values(**row)
                stmt = stmt.on_conflict_do_update(
                    index_elements=list(conflict),
                    set_={name: stmt.excluded[name] for name in row if name not in conflict},
                )
                db.execute(stmt)
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                message = f"{table.name}: {_error_message(e)}"
                logger.warning("Child write failed for listing %s: %s", row.get("listing_id"), message)
                warnings.append(message)


def _first_price(*values: Optional[float]) -> Optional[float]:
    return next((value for value in values if value is not None), None)
