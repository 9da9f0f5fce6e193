# auction_ingest/scrape.py
"""Page loading and HTML extraction for the direct fetch strategy.

``PageLoader`` drives a headless Chromium through Playwright; the parsing
helpers work on plain HTML strings so they can be exercised without a
browser.
"""
import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import parse_qsl, unquote, urlencode, urljoin, urlparse, urlunparse

from bs4 import BeautifulSoup
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PWTimeout
from playwright.sync_api import sync_playwright

from .errors import PageFetchError
from .utils import get_logger

logger = get_logger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
BS_PARSER = "lxml"

PRICE_RE = re.compile(r"(US\$|USD|EUR|GBP|CHF|[\$€£])\s*\$?\s*([0-9][0-9,]*(?:\.\d+)?)")
YEAR_RE = re.compile(r"\b(19|20)\d{2}\b")
MILEAGE_RE = re.compile(
    r"(\d{1,3}(?:,\d{3})+|\d+)\s*(k)?\s*(miles|mile|mi|km|kms|kilometers|kilometres)\b", re.I
)


class PageLoader:
    """Context manager around one Chromium browser and page.

    ``fetch_html`` returns the rendered HTML or raises ``PageFetchError``.
    """

    def __init__(self, headless: bool = True, timeout_seconds: float = 30.0):
        self.headless = headless
        self.timeout_ms = int(timeout_seconds * 1000)
        self._playwright = None
        self._browser = None
        self._context = None
        self._page = None

    def __enter__(self):
        self._playwright = sync_playwright().start()
        self._browser = self._playwright.chromium.launch(headless=self.headless)
        self._context = self._browser.new_context(user_agent=USER_AGENT, locale="en-US")
        self._page = self._context.new_page()
        return self

    def __exit__(self, exc_type, exc, tb):
        if self._context is not None:
            self._context.close()
        if self._browser is not None:
            self._browser.close()
        if self._playwright is not None:
            self._playwright.stop()
        self._page = self._context = self._browser = self._playwright = None
        return False

    def fetch_html(self, url: str) -> str:
        if self._page is None:
            raise PageFetchError(f"page loader not started for {url}")
        try:
            response = self._page.goto(url, timeout=self.timeout_ms, wait_until="domcontentloaded")
        except PWTimeout as e:
            raise PageFetchError(f"timeout loading {url}") from e
        except PlaywrightError as e:
            raise PageFetchError(f"failed loading {url}: {e}") from e
        if response is None:
            raise PageFetchError(f"no response for {url}")
        if not response.ok:
            raise PageFetchError(f"HTTP {response.status} for {url}")
        return self._page.content()


# ---------------------------------------------------------------------------
# URL helpers
# ---------------------------------------------------------------------------

def is_tracking_param(name: str) -> bool:
    return name.lower().startswith("utm_") or name in ("ref", "fbclid")


def clean_url(url: str) -> str:
    """Drop the fragment and tracking query parameters."""
    parts = urlparse(url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if not is_tracking_param(k)]
    return urlunparse(parts._replace(query=urlencode(query), fragment=""))


def with_page_param(base_url: str, param: str, page: int) -> str:
    """URL of results page ``page``; page 1 is the base URL itself."""
    if page <= 1:
        return base_url
    parts = urlparse(base_url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != param]
    query.append((param, str(page)))
    return urlunparse(parts._replace(query=urlencode(query)))


def extract_links(html: str, origin: str, prefixes: Iterable[str],
                  exclude_paths: Iterable[str] = ()) -> List[str]:
    """Absolute detail-page links found in ``html``, in document order.

    Duplicates within the page are kept; callers dedupe across pages.
    """
    prefixes = tuple(prefixes)
    exclude_paths = tuple(exclude_paths)
    soup = BeautifulSoup(html, BS_PARSER)
    links = []
    for a in soup.select("a[href]"):
        href = (a.get("href") or "").strip()
        if not href or href.startswith(("mailto:", "tel:", "javascript:")):
            continue
        absolute = urljoin(origin + "/", href)
        parts = urlparse(absolute)
        if parts.scheme not in ("http", "https"):
            continue
        path = parts.path
        if not path.startswith(prefixes) or path in prefixes:
            continue
        if exclude_paths and path.rstrip("/").startswith(exclude_paths):
            continue
        links.append(clean_url(absolute))
    return links


def title_from_url(url: str) -> Optional[str]:
    """'/listing/2004-porsche-911-gt3/' -> '2004 porsche 911 gt3'."""
    segments = [s for s in urlparse(url).path.split("/") if s]
    if not segments:
        return None
    words = re.sub(r"[-_]+", " ", unquote(segments[-1])).strip()
    return words or None


# ---------------------------------------------------------------------------
# Detail pages
# ---------------------------------------------------------------------------

def _meta(soup, *names) -> Optional[str]:
    for name in names:
        tag = soup.find("meta", property=name) or soup.find("meta", attrs={"name": name})
        if tag and tag.get("content"):
            return tag["content"].strip()
    return None


def _status_from_text(text: str) -> Optional[str]:
    lowered = text.lower()
    if "sold for" in lowered:
        return "sold"
    if "bid to" in lowered or "reserve not met" in lowered:
        return "unsold"
    if "current bid" in lowered or "place bid" in lowered:
        return "active"
    return None


def parse_detail_page(html: str, url: str) -> Dict[str, Any]:
    """Raw record for one listing page.

    Keys follow the shared field aliases so the record goes through the
    canonicalizer like any delegated record.
    """
    soup = BeautifulSoup(html, BS_PARSER)
    title = _meta(soup, "og:title")
    if not title and soup.title and soup.title.string:
        title = soup.title.string.strip()
    text_blob = soup.get_text(" ", strip=True)

    record: Dict[str, Any] = {
        "url": url,
        "title": title or title_from_url(url),
        "description": _meta(soup, "og:description", "description"),
        "scrapedTimestamp": datetime.now(timezone.utc).isoformat(),
    }

    images = []
    for tag in soup.find_all("meta", property="og:image"):
        content = (tag.get("content") or "").strip()
        if content.startswith(("http://", "https://")) and content not in images:
            images.append(content)
    record["images"] = images

    price_m = PRICE_RE.search(text_blob)
    if price_m:
        record["price"] = float(price_m.group(2).replace(",", ""))
        record["currency"] = price_m.group(1)

    year_m = YEAR_RE.search(record["title"] or "") or YEAR_RE.search(text_blob)
    if year_m:
        record["year"] = int(year_m.group(0))

    mileage_m = MILEAGE_RE.search(text_blob)
    if mileage_m:
        mileage = int(re.sub(r"[^\d]", "", mileage_m.group(1)))
        if mileage_m.group(2):
            mileage *= 1000
        record["mileage"] = mileage
        record["mileage_unit"] = mileage_m.group(3).lower()

    loc = soup.select_one("[data-testid*='location'], [class*='location']")
    if loc:
        record["location"] = loc.get_text(" ", strip=True)

    status = _status_from_text(text_blob)
    if status:
        record["status"] = status
    return record


def link_only_record(url: str) -> Dict[str, Any]:
    return {
        "url": url,
        "title": title_from_url(url),
        "scrapedTimestamp": datetime.now(timezone.utc).isoformat(),
    }
