# auction_ingest/db.py
"""Database engine and session helpers.

The engine is built from ``Settings`` by the entry points; nothing here
reads the environment.
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from .errors import IngestConfigError

Base = declarative_base()


def make_engine(settings):
    if not settings.database_url:
        raise IngestConfigError("POSTGRES_URL not set")
    kwargs = {"pool_pre_ping": True}
    if not settings.database_url.startswith("sqlite"):
        # tuned pool settings for cloud DB
        kwargs.update(pool_size=settings.db_pool_size, max_overflow=settings.db_max_overflow)
    return create_engine(settings.database_url, **kwargs)


def make_session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine):
    # models must be imported so their tables are registered on Base
    from . import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
