# tests/test_normalize.py
from datetime import date, datetime, timezone

import pytest

from auction_ingest.normalize import (
    Canonicalizer,
    derive_source_id,
    lookup,
    normalize_raw_listing,
    normalize_status,
    parse_timestamp,
    to_number,
)
from auction_ingest.schemas import RejectReason
from auction_ingest.sources import CanonicalSource


def test_bat_record_normalizes(bat_record):
    result = normalize_raw_listing("bat", bat_record)
    assert result.ok
    listing = result.listing
    assert listing.source == CanonicalSource.BAT
    assert listing.source_id == "123"
    assert listing.make == "Porsche"
    assert listing.model == "911"
    assert listing.year == 2004
    assert listing.status == "sold"
    assert listing.current_bid == 156000
    assert listing.mileage_unit == "miles"
    assert listing.auction_house == "Bring a Trailer"
    assert listing.country == "Unknown"
    assert listing.raw_payload == bat_record


def test_year_taken_from_title_when_missing():
    raw = {"title": "2004 Porsche 911 GT3", "url": "https://bringatrailer.com/listing/x/"}
    result = normalize_raw_listing("bat", raw)
    assert result.ok
    assert result.listing.year == 2004


def test_missing_title_or_url_rejected():
    result = normalize_raw_listing("bat", {"title": "2004 Porsche 911"})
    assert not result.ok
    assert result.reject.reason == RejectReason.MISSING_REQUIRED_FIELDS
    assert result.reject.details == {"title": True, "source_url": False}


def test_non_mapping_raw_rejected():
    result = normalize_raw_listing("bat", ["not", "a", "record"])
    assert not result.ok
    assert result.reject.reason == RejectReason.MISSING_REQUIRED_FIELDS


def test_explicit_other_make_is_non_domain_even_with_marque_title():
    raw = {"title": "Porsche-powered 1970 VW 914", "make": "Volkswagen", "url": "https://carsandbids.com/auctions/a1"}
    result = normalize_raw_listing("carsandbids", raw)
    assert not result.ok
    assert result.reject.reason == RejectReason.NON_DOMAIN_MATCH


def test_title_without_marque_is_non_domain():
    raw = {"title": "1995 Ferrari F355", "url": "https://carsandbids.com/auctions/a2"}
    result = normalize_raw_listing("carsandbids", raw)
    assert result.reject.reason == RejectReason.NON_DOMAIN_MATCH


def test_missing_year_rejected():
    raw = {"title": "Porsche 911 Carrera", "url": "https://carsandbids.com/auctions/a3"}
    result = normalize_raw_listing("carsandbids", raw)
    assert result.reject.reason == RejectReason.MISSING_YEAR_OR_MODEL


def test_schema_violation_is_a_value_not_an_exception():
    raw = {
        "title": "1988 Porsche 911 Carrera",
        "url": "https://carsandbids.com/auctions/a4",
        "vin": "WP0",
        "bids": -3,
    }
    result = normalize_raw_listing("carsandbids", raw)
    assert not result.ok
    assert result.reject.reason == RejectReason.SCHEMA_VALIDATION_FAILED
    fields = {issue.split(":")[0] for issue in result.reject.details["issues"]}
    assert {"vin", "bid_count"} <= fields


def test_relative_url_fails_schema():
    raw = {"title": "1988 Porsche 911 Carrera", "url": "/auctions/a5"}
    result = normalize_raw_listing("carsandbids", raw)
    assert result.reject.reason == RejectReason.SCHEMA_VALIDATION_FAILED


def test_year_below_configured_floor_rejected():
    raw = {"title": "1950 Porsche 356", "year": 1950, "url": "https://classiccars.com/listings/view/1"}
    result = Canonicalizer(earliest_year=1960).normalize("classiccars", raw)
    assert not result.ok


def test_optional_fields_are_parsed():
    raw = {
        "title": "1973 Porsche 911 Carrera RS",
        "url": "https://carsandbids.com/auctions/rs73",
        "sold_price": "$1,250,000",
        "currency": "$",
        "vin": " 9113600 123 ",
        "mileage": "45,100",
        "mileage_unit": "Miles",
        "location": "Austin, TX",
        "status": "Sold",
        "saleDate": "2025-06-01T18:00:00Z",
        "images": ["https://img.example.com/1.jpg", "not-a-url", {"url": "https://img.example.com/2.jpg"}],
    }
    listing = normalize_raw_listing("carsandbids", raw).listing
    assert listing.hammer_price == 1250000
    assert listing.currency == "USD"
    assert listing.vin == "9113600123"
    assert listing.mileage == 45100
    assert listing.mileage_unit == "miles"
    assert (listing.city, listing.region) == ("Austin", "TX")
    assert listing.sale_date == date(2025, 6, 1)
    assert listing.images == ["https://img.example.com/1.jpg", "https://img.example.com/2.jpg"]


def test_nested_aliases_for_autoscout24():
    raw = {
        "title": "Porsche Cayman GT4",
        "url": "https://www.autoscout24.com/offers/porsche-cayman-gt4-1",
        "vehicle": {"make": "Porsche", "model": "Cayman", "mileageInKm": 12000},
        "year": 2016,
        "location": {"countryCode": "DE", "city": "Stuttgart"},
    }
    listing = normalize_raw_listing("autoscout24", raw).listing
    assert listing.model == "Cayman"
    assert listing.mileage == 12000
    assert listing.mileage_unit == "km"
    assert listing.country == "DE"
    assert listing.city == "Stuttgart"


def test_source_id_derived_from_url_when_absent():
    raw = {"title": "2019 Porsche 911 Speedster", "url": "https://carsandbids.com/auctions/sp19"}
    first = normalize_raw_listing("carsandbids", raw).listing
    second = normalize_raw_listing("carsandbids", dict(raw)).listing
    assert first.source_id.startswith("carsandbids_")
    assert len(first.source_id) == len("carsandbids_") + 16
    assert first.source_id == second.source_id


def test_derive_source_id_prefers_explicit_id():
    assert derive_source_id("bat", {"auctionId": 77.0}, "https://x.test/a", ("id", "auctionId")) == "77"


@pytest.mark.parametrize("text,expected", [
    ("Active", "active"),
    ("live now", "active"),
    ("Inactive", "draft"),
    ("delivered", "draft"),
    ("Sold", "sold"),
    ("Unsold", "unsold"),
    ("No Sale", "unsold"),
    ("Ended", "sold"),
    ("Closed", "sold"),
    ("Withdrawn", "delisted"),
    ("cancelled", "delisted"),
    (None, "draft"),
    ("coming soon", "draft"),
])
def test_normalize_status(text, expected):
    assert normalize_status(text) == expected


def test_lookup_walks_dotted_paths():
    assert lookup({"a": {"b": {"c": 1}}}, "a.b.c") == 1
    assert lookup({"a": "flat"}, "a.b") is None


def test_to_number():
    assert to_number("$156,000") == 156000
    assert to_number("n/a") is None
    assert to_number(True) is None
    assert to_number(float("nan")) is None


def test_parse_timestamp_variants():
    assert parse_timestamp("2025-01-02") == datetime(2025, 1, 2, tzinfo=timezone.utc)
    assert parse_timestamp("2025-01-02T10:00:00Z") == datetime(2025, 1, 2, 10, tzinfo=timezone.utc)
    assert parse_timestamp("Jan 2, 2025") == datetime(2025, 1, 2, tzinfo=timezone.utc)
    assert parse_timestamp(1735812000000) == datetime(2025, 1, 2, 10, tzinfo=timezone.utc)
    assert parse_timestamp("soon") is None
