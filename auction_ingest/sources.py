# auction_ingest/sources.py
"""Registry of supported marketplaces.

Each source is described by data only: its canonical name, the auction
house label, the env var holding its Apify actor id, the ordered field
aliases used to read its raw records, and the search pages the direct HTML
adapter starts from. Adding a marketplace means adding a ``SourceProfile``.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Tuple
from urllib.parse import quote_plus


class SourceKey(str, Enum):
    BAT = "bat"
    CARSANDBIDS = "carsandbids"
    AUTOSCOUT24 = "autoscout24"
    CLASSICCARS = "classiccars"


class CanonicalSource(str, Enum):
    BAT = "BaT"
    CARS_AND_BIDS = "CarsAndBids"
    AUTOSCOUT24 = "AutoScout24"
    CLASSICCARS = "ClassicCars"


ALL_SOURCES = "all"

# Ordered alias lists per canonical field; first non-empty value wins.
# Dotted aliases walk nested objects ("vehicle.make").
DEFAULT_FIELD_ALIASES: Dict[str, Tuple[str, ...]] = {
    "title": ("title", "name", "auctionTitle", "headline"),
    "make": ("make", "brand", "manufacturer"),
    "model": ("model", "car_model", "series"),
    "source_url": (
        "source_url", "sourceUrl", "url", "listing_url", "auctionUrl",
        "listingUrl", "href", "link",
    ),
    "source_id": (
        "source_id", "sourceId", "external_id", "externalId", "id",
        "listingId", "auctionId",
    ),
    "year": ("year", "model_year"),
    "status": ("status", "auction_status", "auctionStatus", "state"),
    "sale_date": ("sale_date", "saleDate", "ended_at", "endedAt"),
    "vin": ("vin", "VIN"),
    "hammer_price": ("hammer_price", "hammerPrice", "sold_price", "sale_price"),
    "current_bid": ("current_bid", "currentBid", "bid", "price"),
    "bid_count": ("bid_count", "bids", "bidCount"),
    "final_price": ("final_price", "finalPrice"),
    "currency": ("currency", "currency_code"),
    "mileage": ("mileage", "odometer"),
    "mileage_unit": ("mileage_unit", "odometer_unit"),
    "country": ("country",),
    "region": ("region", "province"),
    "city": ("city",),
    "location": ("location", "locationString"),
    "description_text": ("description", "description_text", "seller_notes"),
    "images": ("images", "photos", "photoUrls", "image_urls"),
}


@dataclass(frozen=True)
class DiscoveryProfile:
    """Where the direct HTML adapter looks for listing links."""

    origin: str
    search_templates: Tuple[str, ...]
    link_prefixes: Tuple[str, ...]
    exclude_paths: Tuple[str, ...] = ()
    page_param: str = "page"

    def candidate_urls(self, marque: str) -> List[str]:
        query = quote_plus(marque.lower())
        slug = "-".join(marque.strip().lower().split()) or query
        return [t.format(origin=self.origin, q=query, slug=slug) for t in self.search_templates]


@dataclass(frozen=True)
class SourceProfile:
    key: SourceKey
    canonical: CanonicalSource
    auction_house: str
    actor_env_var: str
    discovery: DiscoveryProfile
    default_mileage_unit: str = "km"
    field_overrides: Dict[str, Tuple[str, ...]] = field(default_factory=dict)

    @property
    def field_aliases(self) -> Dict[str, Tuple[str, ...]]:
        """Source-specific aliases first, then the shared defaults."""
        merged = {}
        for name, defaults in DEFAULT_FIELD_ALIASES.items():
            ordered = list(self.field_overrides.get(name, ()))
            ordered += [alias for alias in defaults if alias not in ordered]
            merged[name] = tuple(ordered)
        return merged


SOURCE_PROFILES: Dict[SourceKey, SourceProfile] = {
    SourceKey.BAT: SourceProfile(
        key=SourceKey.BAT,
        canonical=CanonicalSource.BAT,
        auction_house="Bring a Trailer",
        actor_env_var="APIFY_BAT_ACTOR_ID",
        default_mileage_unit="miles",
        field_overrides={
            "source_url": ("auctionUrl",),
            "sale_date": ("endDate", "auctionEndDate"),
        },
        discovery=DiscoveryProfile(
            origin="https://bringatrailer.com",
            search_templates=(
                "{origin}/{slug}/",
                "{origin}/auctions/results/?search={q}",
                "{origin}/auctions/?search={q}",
            ),
            link_prefixes=("/listing/",),
        ),
    ),
    SourceKey.CARSANDBIDS: SourceProfile(
        key=SourceKey.CARSANDBIDS,
        canonical=CanonicalSource.CARS_AND_BIDS,
        auction_house="Cars & Bids",
        actor_env_var="APIFY_CARSANDBIDS_ACTOR_ID",
        default_mileage_unit="miles",
        field_overrides={
            "sale_date": ("auctionEnd", "endTime"),
            "mileage": ("miles",),
        },
        discovery=DiscoveryProfile(
            origin="https://carsandbids.com",
            search_templates=(
                "{origin}/auctions/past/?q={q}",
                "{origin}/auctions/past?q={q}",
                "{origin}/auctions/?q={q}",
                "{origin}/auctions?q={q}",
            ),
            link_prefixes=("/auctions/",),
            exclude_paths=("/auctions/past",),
        ),
    ),
    SourceKey.AUTOSCOUT24: SourceProfile(
        key=SourceKey.AUTOSCOUT24,
        canonical=CanonicalSource.AUTOSCOUT24,
        auction_house="AutoScout24",
        actor_env_var="APIFY_AUTOSCOUT24_ACTOR_ID",
        field_overrides={
            "make": ("vehicle.make",),
            "model": ("vehicle.model",),
            "mileage": ("vehicle.mileageInKm",),
            "current_bid": ("prices.public.priceRaw",),
            "country": ("location.countryCode",),
            "city": ("location.city",),
            "region": ("location.region",),
        },
        discovery=DiscoveryProfile(
            origin="https://www.autoscout24.com",
            search_templates=(
                "{origin}/lst/{slug}",
                "{origin}/lst?search={q}",
            ),
            link_prefixes=("/offers/",),
        ),
    ),
    SourceKey.CLASSICCARS: SourceProfile(
        key=SourceKey.CLASSICCARS,
        canonical=CanonicalSource.CLASSICCARS,
        auction_house="ClassicCars",
        actor_env_var="APIFY_CLASSICCARS_ACTOR_ID",
        default_mileage_unit="miles",
        field_overrides={
            "source_id": ("listingId",),
        },
        discovery=DiscoveryProfile(
            origin="https://classiccars.com",
            search_templates=(
                "{origin}/listings/find/all-years/{slug}",
                "{origin}/listings/find?q={q}",
            ),
            link_prefixes=("/listings/view/",),
        ),
    ),
}


def get_profile(source) -> SourceProfile:
    return SOURCE_PROFILES[SourceKey(source)]


def resolve_sources(selector: str) -> List[SourceKey]:
    """Expand a CLI source selector ("all" or one key) into source keys."""
    if selector == ALL_SOURCES:
        return list(SOURCE_PROFILES)
    return [SourceKey(selector)]
