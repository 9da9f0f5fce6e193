# tests/conftest.py
import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from auction_ingest import utils
from auction_ingest.config import Settings
from auction_ingest.db import init_db, make_session_factory
from auction_ingest.normalize import Canonicalizer
from auction_ingest.sources import SourceKey

BAT_URL = "https://bringatrailer.com/listing/2004-porsche-911-gt3/"


@pytest.fixture(autouse=True)
def no_retry_sleep(monkeypatch):
    monkeypatch.setattr(utils.time, "sleep", lambda seconds: None)


@pytest.fixture
def engine():
    # in-memory SQLite shared across sessions
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        apify_token="test-token",
        actor_ids={key: f"acme~{key.value}" for key in SourceKey},
        database_url="sqlite://",
        runs_dir=tmp_path / "runs",
        domain_interval_seconds=0,
    )


@pytest.fixture
def bat_record():
    return {
        "id": 123,
        "title": "2004 Porsche 911 GT3",
        "brand": "Porsche",
        "auctionStatus": "sold",
        "currentBid": 156000,
        "url": BAT_URL,
    }


@pytest.fixture
def listing(bat_record):
    return Canonicalizer().normalize("bat", bat_record).listing
