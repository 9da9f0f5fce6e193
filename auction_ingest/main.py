# auction_ingest/main.py
from fastapi import FastAPI
from sqlalchemy.exc import SQLAlchemyError

from .api.routes import get_settings, router as api_router
from .db import init_db, make_engine
from .scheduler import build_scheduler
from .utils import configure_logging, logger

# create FastAPI instance
app = FastAPI(title="auction-ingest")
app.include_router(api_router)


@app.on_event("startup")
def on_startup():
    settings = get_settings()
    configure_logging(settings.log_level)
    if settings.database_url:
        # Ensure database tables are created on startup
        try:
            init_db(make_engine(settings))
        except SQLAlchemyError as e:
            logger.error("Could not create tables on startup: %s", e)
    if settings.schedule_interval_hours:
        scheduler = build_scheduler(settings)
        scheduler.start()
        app.state.scheduler = scheduler
        logger.info("Scheduler started")


@app.on_event("shutdown")
def on_shutdown():
    scheduler = getattr(app.state, "scheduler", None)
    if scheduler is not None:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
