# auction_ingest/normalize.py
"""Raw record -> CanonicalListing.

``Canonicalizer.normalize`` returns ``Accepted`` or ``Rejected``; it does not
raise for malformed or out-of-domain input. Field lookup is driven by the
per-source alias tables in ``sources.py``.
"""
import hashlib
import math
import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Sequence, Union

from pydantic import ValidationError

from .schemas import (
    DEFAULT_MARQUE,
    EARLIEST_PLAUSIBLE_YEAR,
    CanonicalListing,
    NormalizeReject,
    RejectReason,
    is_http_url,
)
from .sources import SourceProfile, get_profile

YEAR_TOKEN = re.compile(r"\b(19\d{2}|20\d{2})\b")
FOUR_DIGITS = re.compile(r"\b\d{4}\b\s*")
CURRENCY_SYMBOLS = {"$": "USD", "US$": "USD", "€": "EUR", "£": "GBP", "CHF": "CHF", "¥": "JPY"}
DATE_FORMATS = (
    "%Y-%m-%d", "%m/%d/%Y", "%d/%m/%Y", "%Y%m%d", "%d-%m-%Y",
    "%b %d, %Y", "%B %d, %Y", "%d %b %Y", "%d %B %Y",
)


@dataclass(frozen=True)
class Accepted:
    listing: CanonicalListing
    ok: ClassVar[bool] = True


@dataclass(frozen=True)
class Rejected:
    reject: NormalizeReject
    ok: ClassVar[bool] = False


NormalizeResult = Union[Accepted, Rejected]


# ---------------------------------------------------------------------------
# Field lookup helpers
# ---------------------------------------------------------------------------

def lookup(raw: Mapping[str, Any], path: str) -> Any:
    """Read ``path`` from ``raw``; dotted paths walk nested mappings."""
    value: Any = raw
    for part in path.split("."):
        if not isinstance(value, Mapping):
            return None
        value = value.get(part)
    return value


def pick_string(raw: Mapping[str, Any], aliases: Sequence[str]) -> Optional[str]:
    for alias in aliases:
        value = lookup(raw, alias)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def pick_id(raw: Mapping[str, Any], aliases: Sequence[str]) -> Optional[str]:
    for alias in aliases:
        value = lookup(raw, alias)
        if isinstance(value, str) and value.strip():
            return value.strip()
        if _is_number(value):
            return str(int(value)) if float(value).is_integer() else str(value)
    return None


def to_number(value: Any) -> Optional[float]:
    if _is_number(value):
        return float(value)
    if isinstance(value, str):
        cleaned = re.sub(r"[^\d.\-]", "", value)
        if not cleaned.strip(".-"):
            return None
        try:
            number = float(cleaned)
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


def pick_number(raw: Mapping[str, Any], aliases: Sequence[str]) -> Optional[float]:
    for alias in aliases:
        number = to_number(lookup(raw, alias))
        if number is not None:
            return number
    return None


def pick_images(raw: Mapping[str, Any], aliases: Sequence[str]) -> List[str]:
    for alias in aliases:
        value = lookup(raw, alias)
        if not isinstance(value, list):
            continue
        urls = []
        for item in value:
            if isinstance(item, Mapping):
                item = item.get("url") or item.get("src")
            if isinstance(item, str) and is_http_url(item.strip()):
                urls.append(item.strip())
        if urls:
            return urls
    return []


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Best-effort parse of a date/datetime value into an aware UTC datetime."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if _is_number(value):
        seconds = float(value) / 1000 if float(value) > 1e12 else float(value)
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    iso = text[:-1] + "+00:00" if text.endswith("Z") else text
    try:
        parsed = datetime.fromisoformat(iso)
    except ValueError:
        parsed = None
        for fmt in DATE_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue
    if parsed is None:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def normalize_status(raw_status: Optional[str]) -> str:
    status = (raw_status or "").lower()
    if "unsold" in status or "no sale" in status or "not sold" in status:
        return "unsold"
    if re.search(r"\b(?:active|live)\b", status):
        return "active"
    if "sold" in status:
        return "sold"
    if "ended" in status or "complete" in status or "closed" in status:
        return "sold"
    if "delist" in status or "withdrawn" in status or "cancel" in status:
        return "delisted"
    return "draft"


def derive_source_id(source_key: str, raw: Mapping[str, Any], source_url: str,
                     aliases: Sequence[str]) -> str:
    explicit = pick_id(raw, aliases)
    if explicit:
        return explicit
    digest = hashlib.sha256(f"{source_key}:{source_url}".encode("utf-8")).hexdigest()[:16]
    return f"{source_key}_{digest}"


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


# ---------------------------------------------------------------------------
# Canonicalizer
# ---------------------------------------------------------------------------

class Canonicalizer:
    def __init__(self, marque: str = DEFAULT_MARQUE, earliest_year: int = EARLIEST_PLAUSIBLE_YEAR):
        self.marque = marque
        self.earliest_year = earliest_year
        self._marque_re = re.compile(re.escape(marque), re.IGNORECASE)

    @classmethod
    def from_settings(cls, settings) -> "Canonicalizer":
        return cls(marque=settings.marque, earliest_year=settings.earliest_year)

    def normalize(self, source, raw: Any) -> NormalizeResult:
        profile = get_profile(source)
        if not isinstance(raw, Mapping):
            return self._reject(profile, RejectReason.MISSING_REQUIRED_FIELDS, {},
                                {"raw_type": type(raw).__name__})
        raw = dict(raw)
        aliases = profile.field_aliases

        title = pick_string(raw, aliases["title"])
        source_url = pick_string(raw, aliases["source_url"])
        if not title or not source_url:
            return self._reject(profile, RejectReason.MISSING_REQUIRED_FIELDS, raw,
                                {"title": bool(title), "source_url": bool(source_url)})

        raw_make = pick_string(raw, aliases["make"])
        raw_model = pick_string(raw, aliases["model"])
        if raw_make and not self._marque_re.search(raw_make):
            return self._reject(profile, RejectReason.NON_DOMAIN_MATCH, raw, {"raw_make": raw_make})
        if not self._marque_re.search(f"{raw_make or ''} {title} {raw_model or ''}"):
            return self._reject(profile, RejectReason.NON_DOMAIN_MATCH, raw, {})

        year = self._derive_year(raw, aliases["year"], title)
        model = raw_model or self._model_from_title(title)
        if not year or not model:
            return self._reject(profile, RejectReason.MISSING_YEAR_OR_MODEL, raw,
                                {"year": year, "model": model})

        candidate = self._build_candidate(profile, raw, title, source_url, year, model)
        try:
            listing = CanonicalListing.model_validate(
                candidate, context={"marque": self.marque, "earliest_year": self.earliest_year}
            )
        except ValidationError as error:
            issues = [
                f"{'.'.join(str(part) for part in issue['loc'])}:{issue['msg']}"
                for issue in error.errors()
            ]
            return self._reject(profile, RejectReason.SCHEMA_VALIDATION_FAILED, raw, {"issues": issues})
        return Accepted(listing)

    def _build_candidate(self, profile: SourceProfile, raw: Dict[str, Any], title: str,
                         source_url: str, year: int, model: str) -> Dict[str, Any]:
        aliases = profile.field_aliases
        vin = pick_string(raw, aliases["vin"])
        bid_count = pick_number(raw, aliases["bid_count"])
        mileage = pick_number(raw, aliases["mileage"])
        sale_at = None
        for alias in aliases["sale_date"]:
            sale_at = parse_timestamp(lookup(raw, alias))
            if sale_at:
                break
        city, region, country = self._location(raw, aliases)
        return {
            "source": profile.canonical,
            "source_id": derive_source_id(profile.key.value, raw, source_url, aliases["source_id"]),
            "source_url": source_url,
            "make": self.marque,
            "model": model,
            "year": year,
            "title": title,
            "status": normalize_status(pick_string(raw, aliases["status"])),
            "sale_date": sale_at.date() if sale_at else None,
            "vin": re.sub(r"\s+", "", vin).upper() if vin else None,
            "hammer_price": pick_number(raw, aliases["hammer_price"]),
            "current_bid": pick_number(raw, aliases["current_bid"]),
            "bid_count": int(bid_count) if bid_count is not None else None,
            "final_price": pick_number(raw, aliases["final_price"]),
            "currency": self._currency(pick_string(raw, aliases["currency"])),
            "mileage": int(mileage) if mileage is not None else None,
            "mileage_unit": self._mileage_unit(profile, pick_string(raw, aliases["mileage_unit"])),
            "country": country or "Unknown",
            "region": region,
            "city": city,
            "auction_house": profile.auction_house,
            "description_text": pick_string(raw, aliases["description_text"]),
            "images": pick_images(raw, aliases["images"]),
            "raw_payload": raw,
        }

    def _derive_year(self, raw, aliases, title: str) -> Optional[int]:
        latest = datetime.now(timezone.utc).year + 1
        direct = pick_number(raw, aliases)
        if direct is not None and self.earliest_year <= direct <= latest:
            return int(direct)
        match = YEAR_TOKEN.search(title)
        return int(match.group(1)) if match else None

    def _model_from_title(self, title: str) -> Optional[str]:
        remainder = self._marque_re.sub("", FOUR_DIGITS.sub("", title)).strip()
        words = remainder.split()
        return words[0] if words else None

    @staticmethod
    def _currency(value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        return CURRENCY_SYMBOLS.get(value, value).upper()

    @staticmethod
    def _mileage_unit(profile: SourceProfile, unit_text: Optional[str]) -> str:
        text = (unit_text or "").lower()
        if "mile" in text or text == "mi":
            return "miles"
        if "km" in text or "kilomet" in text:
            return "km"
        return profile.default_mileage_unit

    @staticmethod
    def _location(raw, aliases):
        city = pick_string(raw, aliases["city"])
        region = pick_string(raw, aliases["region"])
        country = pick_string(raw, aliases["country"])
        free_text = pick_string(raw, aliases["location"])
        if free_text and "," in free_text:
            parts = [part.strip() for part in free_text.split(",") if part.strip()]
            city = city or (parts[0] if parts else None)
            region = region or (parts[1] if len(parts) > 1 else None)
            if len(parts) > 2:
                country = country or parts[-1]
        return city, region, country

    @staticmethod
    def _reject(profile: SourceProfile, reason: RejectReason, raw, details) -> Rejected:
        return Rejected(NormalizeReject(source=profile.canonical, reason=reason, raw=raw, details=details))


def normalize_raw_listing(source, raw: Any, marque: str = DEFAULT_MARQUE,
                          earliest_year: int = EARLIEST_PLAUSIBLE_YEAR) -> NormalizeResult:
    return Canonicalizer(marque=marque, earliest_year=earliest_year).normalize(source, raw)
