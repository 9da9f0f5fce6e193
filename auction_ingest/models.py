# auction_ingest/models.py
"""SQLAlchemy ORM models for the listing store.

``listings`` holds one row per (source, source_id); every child table is
keyed by ``listing_id`` so it can be upserted independently of the others.
"""
from sqlalchemy import (
    JSON,
    TIMESTAMP,
    Column,
    Date,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB

from .db import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")


class Listing(Base):
    __tablename__ = "listings"
    __table_args__ = (UniqueConstraint("source", "source_id", name="uq_listings_source_source_id"),)

    id = Column(Integer, primary_key=True, index=True)
    source = Column(Text, nullable=False)
    source_id = Column(Text, nullable=False)
    source_url = Column(Text, nullable=False, index=True)
    title = Column(Text, nullable=False)
    make = Column(Text, nullable=False)
    model = Column(Text, nullable=False)
    year = Column(Integer, nullable=False)
    status = Column(Text, nullable=False)
    sale_date = Column(Date)
    hammer_price = Column(Numeric)
    current_bid = Column(Numeric)
    bid_count = Column(Integer)
    final_price = Column(Numeric)
    original_currency = Column(Text)
    mileage = Column(Integer)
    mileage_unit = Column(Text)
    vin = Column(Text)
    country = Column(Text)
    region = Column(Text)
    city = Column(Text)
    auction_house = Column(Text)
    description_text = Column(Text)
    images = Column(JSONType)
    photos_count = Column(Integer)
    raw_payload = Column(JSONType)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now())
    scrape_timestamp = Column(TIMESTAMP(timezone=True), server_default=func.now())


class Pricing(Base):
    __tablename__ = "pricing"
    id = Column(Integer, primary_key=True)
    listing_id = Column(Integer, ForeignKey("listings.id", ondelete="CASCADE"), nullable=False, unique=True)
    original_currency = Column(Text)
    amount_original = Column(Numeric)
    amount_usd = Column(Numeric)


class VehicleSpecs(Base):
    __tablename__ = "vehicle_specs"
    id = Column(Integer, primary_key=True)
    listing_id = Column(Integer, ForeignKey("listings.id", ondelete="CASCADE"), nullable=False, unique=True)
    make = Column(Text)
    model = Column(Text)
    year = Column(Integer)
    vin = Column(Text)
    mileage = Column(Integer)
    mileage_unit = Column(Text)


class AuctionInfo(Base):
    __tablename__ = "auction_info"
    id = Column(Integer, primary_key=True)
    listing_id = Column(Integer, ForeignKey("listings.id", ondelete="CASCADE"), nullable=False, unique=True)
    auction_house = Column(Text)
    status = Column(Text)
    number_of_bids = Column(Integer)
    final_price = Column(Numeric)
    sale_date = Column(Date)


class LocationData(Base):
    __tablename__ = "location_data"
    id = Column(Integer, primary_key=True)
    listing_id = Column(Integer, ForeignKey("listings.id", ondelete="CASCADE"), nullable=False, unique=True)
    country = Column(Text)
    region = Column(Text)
    city = Column(Text)


class ProvenanceData(Base):
    __tablename__ = "provenance_data"
    id = Column(Integer, primary_key=True)
    listing_id = Column(Integer, ForeignKey("listings.id", ondelete="CASCADE"), nullable=False, unique=True)
    seller_name = Column(Text)
    ownership_count = Column(Integer)


class PhotoMedia(Base):
    __tablename__ = "photos_media"
    __table_args__ = (UniqueConstraint("listing_id", "photo_url", name="uq_photos_listing_url"),)
    id = Column(Integer, primary_key=True)
    listing_id = Column(Integer, ForeignKey("listings.id", ondelete="CASCADE"), nullable=False)
    photo_url = Column(Text, nullable=False)
    photo_order = Column(Integer, nullable=False)


class PriceHistory(Base):
    __tablename__ = "price_history"
    __table_args__ = (UniqueConstraint("listing_id", "time", name="uq_price_history_listing_time"),)
    id = Column(Integer, primary_key=True)
    listing_id = Column(Integer, ForeignKey("listings.id", ondelete="CASCADE"), nullable=False)
    time = Column(TIMESTAMP(timezone=True), nullable=False)
    status = Column(Text)
    price_usd = Column(Numeric)
    price_eur = Column(Numeric)
    price_gbp = Column(Numeric)


Index("idx_listings_year", Listing.year)
Index("idx_listings_status", Listing.status)
Index("idx_price_history_time", PriceHistory.time)
