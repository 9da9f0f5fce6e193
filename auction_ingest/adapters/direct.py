# auction_ingest/adapters/direct.py
"""Direct fetch strategy: page through a marketplace's search results.

Search candidates are tried in order and the first that loads is paged
until the mode's page budget, the request limit, or a page with no new
links. Every page load waits on the shared per-domain limiter.
"""
from typing import Callable, List, Optional, Tuple

from ..errors import PageFetchError, SourceFetchError
from ..net import PerDomainRateLimiter
from ..scrape import PageLoader, extract_links, link_only_record, parse_detail_page, with_page_param
from ..sources import SourceKey, SourceProfile, get_profile
from ..utils import get_logger, retry
from .base import BaseAdapter, FetchRequest, RawRecord

logger = get_logger(__name__)

PAGE_BUDGETS = {"sample": 1, "incremental": 3, "backfill": 10}


class DirectHtmlAdapter(BaseAdapter):
    name = "direct"

    def __init__(self, settings, loader_factory: Optional[Callable[[], PageLoader]] = None,
                 limiter: Optional[PerDomainRateLimiter] = None) -> None:
        super().__init__(settings)
        self._loader_factory = loader_factory or (
            lambda: PageLoader(headless=settings.headless, timeout_seconds=settings.request_timeout_seconds)
        )
        self.limiter = limiter or PerDomainRateLimiter(settings.domain_interval_seconds)

    def fetch(self, source: SourceKey, request: FetchRequest) -> List[RawRecord]:
        profile = get_profile(source)
        with self._loader_factory() as loader:
            links = self.discover(loader, profile, request)
            logger.info("Discovered %d listing links for %s", len(links), profile.key.value)
            records = [self._record_for(loader, link) for link in links]
        return records[: request.limit]

    def discover(self, loader, profile: SourceProfile, request: FetchRequest) -> List[str]:
        discovery = profile.discovery
        base_url, html = self._pick_base_url(loader, discovery.candidate_urls(self.settings.marque))
        if base_url is None:
            raise SourceFetchError(f"No working search URL for {profile.key.value}")

        seen = set()
        links: List[str] = []
        budget = PAGE_BUDGETS.get(request.mode, 1)
        for page in range(1, budget + 1):
            if page > 1:
                page_url = with_page_param(base_url, discovery.page_param, page)
                try:
                    html = self._load(loader, page_url)
                except PageFetchError as e:
                    raise SourceFetchError(f"Search page {page_url} failed: {e}") from e
            new_count = 0
            for link in extract_links(html, discovery.origin, discovery.link_prefixes, discovery.exclude_paths):
                if link in seen:
                    continue
                seen.add(link)
                links.append(link)
                new_count += 1
                if len(links) >= request.limit:
                    break
            logger.debug("%s page %d: %d new links", profile.key.value, page, new_count)
            if len(links) >= request.limit or new_count == 0:
                break
        return links

    def _pick_base_url(self, loader, candidates) -> Tuple[Optional[str], Optional[str]]:
        for url in candidates:
            try:
                return url, self._load(loader, url)
            except PageFetchError as e:
                logger.warning("Search candidate %s unavailable: %s", url, e)
        return None, None

    def _record_for(self, loader, link: str) -> RawRecord:
        if not self.settings.scrape_details:
            return link_only_record(link)
        try:
            return parse_detail_page(self._load(loader, link), link)
        except PageFetchError as e:
            logger.warning("Detail page %s failed, keeping link only: %s", link, e)
            return link_only_record(link)

    @retry(PageFetchError, tries=3, delay=0.5, backoff=2)
    def _load(self, loader, url: str) -> str:
        self.limiter.wait_for_url(url)
        return loader.fetch_html(url)
