# auction_ingest/adapters/apify.py
"""Delegated fetch strategy: run an Apify actor and read its dataset.

One actor per marketplace; the actor id comes from settings. The actor run
is submitted synchronously (``waitForFinish``) and its default dataset is
read back as a JSON array.
"""
import math
from typing import Any, Dict, List, Optional

import requests

from ..errors import SourceFetchError
from ..sources import SOURCE_PROFILES, SourceKey
from ..utils import get_logger, retry
from .base import BaseAdapter, FetchRequest, RawRecord

logger = get_logger(__name__)

APIFY_BASE = "https://api.apify.com/v2"
BAT_AUCTIONS_URL = "https://bringatrailer.com/auctions/"
CARSANDBIDS_BASE_URLS = (
    "https://carsandbids.com/auctions",
    "https://carsandbids.com/auctions/past",
)
RETRYABLE = (requests.RequestException, SourceFetchError)


class ApifyRunError(SourceFetchError):
    """Actor run or dataset read came back unusable."""


def build_bat_input(marque: str, limit: int, active_only: bool = False,
                    sold_only: bool = False) -> Dict[str, Any]:
    if active_only:
        start_url = BAT_AUCTIONS_URL
    elif sold_only:
        start_url = f"{BAT_AUCTIONS_URL}?search={marque}&result=sold"
    else:
        start_url = f"{BAT_AUCTIONS_URL}?search={marque}"
    return {"startUrl": start_url, "maxItems": max(1, limit)}


def build_carsandbids_urls(mode: str, limit: int) -> List[str]:
    urls = list(CARSANDBIDS_BASE_URLS)
    if mode == "backfill":
        pages = max(2, min(10, math.ceil(limit / 50)))
        urls += [f"{CARSANDBIDS_BASE_URLS[1]}?page={page}" for page in range(2, pages + 1)]
    return urls


def build_actor_input(source: SourceKey, request: FetchRequest, marque: str) -> Dict[str, Any]:
    if source == SourceKey.BAT:
        return build_bat_input(marque, request.limit, request.active_only, request.sold_only)
    actor_input: Dict[str, Any] = {
        "query": marque,
        "make": marque,
        "mode": request.mode,
        "limit": request.limit,
        "from": request.from_,
        "since": request.since,
        f"{marque.lower()}Only": True,
    }
    if source == SourceKey.CARSANDBIDS:
        actor_input["urls"] = [{"url": url} for url in build_carsandbids_urls(request.mode, request.limit)]
        actor_input["maxItems"] = request.limit
        actor_input["maxChargedResults"] = request.limit
    return actor_input


class ApifyAdapter(BaseAdapter):
    name = "delegated"

    def __init__(self, settings, session: Optional[requests.Session] = None) -> None:
        super().__init__(settings)
        self._session = session or requests.Session()
        if settings.apify_token:
            self._session.headers.update({"Authorization": f"Bearer {settings.apify_token}"})

    def fetch(self, source: SourceKey, request: FetchRequest) -> List[RawRecord]:
        source = SourceKey(source)
        actor_id = self.settings.actor_ids.get(source)
        if not self.settings.apify_token or not actor_id:
            raise SourceFetchError(
                f"Missing APIFY_TOKEN or {SOURCE_PROFILES[source].actor_env_var} for {source.value}"
            )
        actor_input = build_actor_input(source, request, self.settings.marque)
        logger.info("Starting actor %s for %s (limit=%d)", actor_id, source.value, request.limit)
        try:
            dataset_id = self._start_run(actor_id, actor_input)
            items = self._read_dataset(dataset_id, request.limit)
        except requests.RequestException as e:
            raise SourceFetchError(f"Apify request failed: {e}") from e
        logger.info("Dataset %s returned %d items for %s", dataset_id, len(items), source.value)
        return items[: request.limit]

    @retry(RETRYABLE, tries=3, delay=0.5, backoff=2, jitter=0.2)
    def _start_run(self, actor_id: str, actor_input: Dict[str, Any]) -> str:
        # Apify uses "~" instead of "/" in actor ids inside URLs
        response = self._session.post(
            f"{APIFY_BASE}/acts/{actor_id.replace('/', '~')}/runs",
            params={"waitForFinish": self.settings.apify_wait_seconds},
            json=actor_input,
            timeout=self.settings.apify_wait_seconds + self.settings.request_timeout_seconds,
        )
        if not response.ok:
            raise ApifyRunError(f"Apify actor run failed ({response.status_code}): {response.text[:300]}")
        payload = response.json()
        run = payload.get("data") if isinstance(payload, dict) else None
        dataset_id = run.get("defaultDatasetId") if isinstance(run, dict) else None
        if not dataset_id:
            raise ApifyRunError("Apify run returned no defaultDatasetId")
        return dataset_id

    @retry(RETRYABLE, tries=3, delay=0.5, backoff=2, jitter=0.2)
    def _read_dataset(self, dataset_id: str, limit: int) -> List[RawRecord]:
        response = self._session.get(
            f"{APIFY_BASE}/datasets/{dataset_id}/items",
            params={"clean": "true", "format": "json", "limit": limit},
            timeout=self.settings.request_timeout_seconds,
        )
        if not response.ok:
            raise ApifyRunError(f"Apify dataset fetch failed ({response.status_code}): {response.text[:300]}")
        payload = response.json()
        if not isinstance(payload, list):
            raise ApifyRunError("Apify dataset payload is not an array")
        return payload

    def close(self) -> None:
        self._session.close()
