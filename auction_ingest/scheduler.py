# auction_ingest/scheduler.py
from apscheduler.schedulers.background import BackgroundScheduler

from .pipeline import run_ingest
from .schemas import IngestOptions
from .utils import logger

JOB_ID = "auction-ingest"


def build_scheduler(settings, options: IngestOptions = None, runner=run_ingest) -> BackgroundScheduler:
    """Background scheduler with one interval job; the caller starts it."""
    options = options or IngestOptions()

    def scheduled_run():
        try:
            result = runner(options, settings)
            logger.info("Scheduled run %s wrote %s", result.report.run_id, result.report_path)
        except Exception as e:
            logger.exception("Scheduled ingest run failed: %s", e)

    scheduler = BackgroundScheduler()
    scheduler.add_job(
        scheduled_run,
        "interval",
        hours=settings.schedule_interval_hours,
        id=JOB_ID,
        max_instances=1,
        coalesce=True,
    )
    logger.info("Scheduler configured: every %s h (source=%s, mode=%s)",
                settings.schedule_interval_hours, options.source, options.mode)
    return scheduler
