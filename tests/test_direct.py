# tests/test_direct.py
import pytest

from auction_ingest.adapters import DirectHtmlAdapter, FetchRequest
from auction_ingest.errors import PageFetchError, SourceFetchError
from auction_ingest.net import PerDomainRateLimiter
from auction_ingest.scrape import clean_url, extract_links, parse_detail_page, title_from_url, with_page_param
from auction_ingest.sources import SourceKey

BAT = "https://bringatrailer.com"


def search_page(*paths):
    anchors = "".join(f'<a href="{path}">x</a>' for path in paths)
    return f"<html><body>{anchors}<a href='/about/'>about</a></body></html>"


DETAIL = """
<html><head>
<meta property="og:title" content="2004 Porsche 911 GT3" />
<meta property="og:description" content="Six-speed, Seal Grey." />
<meta property="og:image" content="https://img.example.com/gt3-1.jpg" />
<meta property="og:image" content="https://img.example.com/gt3-2.jpg" />
</head><body>
<p>Sold for USD $156,000 on 5/1/26</p>
<p>41k Miles</p>
<div class="listing-location">Austin, Texas</div>
</body></html>
"""


class FakeLoader:
    def __init__(self, pages, failing=()):
        self.pages = pages
        self.failing = set(failing)
        self.requested = []
        self.entered = False
        self.exited = False

    def __enter__(self):
        self.entered = True
        return self

    def __exit__(self, *exc):
        self.exited = True
        return False

    def fetch_html(self, url):
        self.requested.append(url)
        if url in self.failing or url not in self.pages:
            raise PageFetchError(f"HTTP 404 for {url}")
        return self.pages[url]


def make_adapter(settings, loader, **changes):
    settings = settings.model_copy(update=changes)
    return DirectHtmlAdapter(settings, loader_factory=lambda: loader,
                             limiter=PerDomainRateLimiter(0, sleep=lambda s: None))


def test_first_working_candidate_is_paged_until_no_new_links(settings):
    base = f"{BAT}/auctions/results/?search=porsche"
    loader = FakeLoader({
        base: search_page("/listing/a/", "/listing/b/?utm_source=x#comments"),
        with_page_param(base, "page", 2): search_page("/listing/b/", "/listing/c/"),
        with_page_param(base, "page", 3): search_page("/listing/c/"),
    })
    adapter = make_adapter(settings, loader, scrape_details=False)
    records = adapter.fetch(SourceKey.BAT, FetchRequest(mode="backfill", limit=50))
    assert [r["url"] for r in records] == [f"{BAT}/listing/a/", f"{BAT}/listing/b/", f"{BAT}/listing/c/"]
    # the make page candidate failed three times before the results page worked
    assert loader.requested[:3] == [f"{BAT}/porsche/"] * 3
    assert loader.requested[-1] == with_page_param(base, "page", 3)
    assert loader.entered and loader.exited


def test_page_budget_for_sample_mode(settings):
    base = f"{BAT}/porsche/"
    loader = FakeLoader({
        base: search_page("/listing/a/"),
        with_page_param(base, "page", 2): search_page("/listing/b/"),
    })
    records = make_adapter(settings, loader, scrape_details=False).fetch(
        SourceKey.BAT, FetchRequest(mode="sample", limit=50))
    assert len(records) == 1
    assert loader.requested == [base]


def test_limit_stops_paging(settings):
    base = f"{BAT}/porsche/"
    loader = FakeLoader({base: search_page("/listing/a/", "/listing/b/", "/listing/c/")})
    records = make_adapter(settings, loader, scrape_details=False).fetch(
        SourceKey.BAT, FetchRequest(mode="incremental", limit=2))
    assert len(records) == 2
    assert loader.requested == [base]


def test_no_working_candidate_raises(settings):
    loader = FakeLoader({})
    with pytest.raises(SourceFetchError):
        make_adapter(settings, loader).fetch(SourceKey.BAT, FetchRequest())


def test_detail_pages_are_parsed_and_failures_degrade(settings):
    base = f"{BAT}/porsche/"
    good, bad = f"{BAT}/listing/2004-porsche-911-gt3/", f"{BAT}/listing/1999-porsche-911-carrera/"
    loader = FakeLoader({base: search_page("/listing/2004-porsche-911-gt3/", "/listing/1999-porsche-911-carrera/"),
                         good: DETAIL}, failing=[bad])
    records = make_adapter(settings, loader).fetch(SourceKey.BAT, FetchRequest(mode="sample"))
    assert records[0]["title"] == "2004 Porsche 911 GT3"
    assert records[0]["price"] == 156000
    assert records[1]["url"] == bad
    assert records[1]["title"] == "1999 porsche 911 carrera"
    assert "price" not in records[1]


def test_carsandbids_index_links_are_excluded():
    html = search_page("/auctions/", "/auctions/past/", "/auctions/past?page=2", "/auctions/rx7Gd2/2002-porsche-911")
    links = extract_links(html, "https://carsandbids.com", ("/auctions/",), ("/auctions/past",))
    assert links == ["https://carsandbids.com/auctions/rx7Gd2/2002-porsche-911"]


def test_extract_links_filters_by_path_prefix():
    html = search_page("mailto:a@b.c", "https://other.example/listing/x/", "/listing/z/?ref=home&color=red")
    links = extract_links(html, BAT, ("/listing/",))
    assert links == ["https://other.example/listing/x/", f"{BAT}/listing/z/?color=red"]


def test_parse_detail_page():
    record = parse_detail_page(DETAIL, f"{BAT}/listing/2004-porsche-911-gt3/")
    assert record["title"] == "2004 Porsche 911 GT3"
    assert record["description"] == "Six-speed, Seal Grey."
    assert record["images"] == ["https://img.example.com/gt3-1.jpg", "https://img.example.com/gt3-2.jpg"]
    assert (record["price"], record["currency"]) == (156000, "USD")
    assert record["year"] == 2004
    assert (record["mileage"], record["mileage_unit"]) == (41000, "miles")
    assert record["location"] == "Austin, Texas"
    assert record["status"] == "sold"


def test_url_helpers():
    assert with_page_param("https://a.test/s?q=porsche", "page", 1) == "https://a.test/s?q=porsche"
    assert with_page_param("https://a.test/s?q=porsche&page=2", "page", 3) == "https://a.test/s?q=porsche&page=3"
    assert clean_url("https://a.test/x?utm_medium=m&fbclid=1&id=2#top") == "https://a.test/x?id=2"
    assert title_from_url("https://a.test/listing/2004-porsche-911-gt3/") == "2004 porsche 911 gt3"
