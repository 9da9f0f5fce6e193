# auction_ingest/pipeline.py
"""Run orchestration: fetch -> normalize -> dedupe -> filter -> write -> report.

Sources are processed one after another and listings one at a time in
discovery order. A source failure is recorded and the run moves on to the
next source unless ``fail_fast`` is set.
"""
import uuid
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

from .adapters import BaseAdapter, FetchRequest, build_adapter
from .checkpoint import CheckpointStore
from .config import Settings, validate_run_config
from .crud import ListingWriter
from .db import init_db, make_engine, make_session_factory
from .filters import SoldWindowFilter, dedupe, evaluate_active_only, evaluate_sold_window
from .normalize import Canonicalizer
from .report import RunReporter
from .schemas import CanonicalListing, IngestOptions, NormalizeReject, RejectReason, RunReport, RunTotals
from .sources import SourceKey, get_profile, resolve_sources
from .utils import get_logger

logger = get_logger(__name__)


class Stage(str, Enum):
    FETCHING = "fetching"
    NORMALIZING = "normalizing"
    FILTERING = "filtering"
    WRITING = "writing"
    DONE = "done"
    ERROR = "error"


@dataclass(frozen=True)
class RunResult:
    report: RunReport
    report_path: Path
    rejects_path: Path


def new_run_id(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"run_{now:%Y%m%d%H%M%S}_{uuid.uuid4().hex[:8]}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IngestRunner:
    def __init__(self, options: IngestOptions, settings: Settings,
                 adapter: Optional[BaseAdapter] = None,
                 writer: Optional[ListingWriter] = None,
                 checkpoints: Optional[CheckpointStore] = None,
                 reporter: Optional[RunReporter] = None,
                 canonicalizer: Optional[Canonicalizer] = None,
                 clock: Callable[[], datetime] = _utcnow):
        self.options = options
        self.settings = settings
        self._adapter = adapter
        self._writer = writer
        self.checkpoints = checkpoints or CheckpointStore(settings.resolved_checkpoint_path)
        self.reporter = reporter or RunReporter(settings.runs_dir)
        self.canonicalizer = canonicalizer or Canonicalizer.from_settings(settings)
        self._clock = clock

        self.totals = RunTotals()
        self.rejection_reasons: Counter = Counter()
        self.rejects: List[NormalizeReject] = []
        self.errors: List[str] = []
        self.stages = {}

    def run(self) -> RunResult:
        """Execute one ingest run and write its report.

        Raises:
            IngestConfigError: before any source runs, when the run cannot succeed.
            Exception: the first source failure, when ``fail_fast`` is set.
        """
        options = self.options
        validate_run_config(self.settings, options)
        run_id = options.resume or new_run_id(self._clock())
        started_at = self._clock().isoformat()
        sources = resolve_sources(options.source)
        logger.info("Run %s starting: source=%s mode=%s limit=%d dry_run=%s strategy=%s",
                    run_id, options.source, options.mode, options.limit, options.dry_run, options.strategy)

        writer = self._writer or self._default_writer()
        self.checkpoints.load()
        adapter = self._adapter or build_adapter(options.strategy, self.settings)
        try:
            for source in sources:
                try:
                    self._run_source(run_id, source, adapter, writer)
                except Exception as e:
                    self._set_stage(source, Stage.ERROR)
                    self.totals.errors += 1
                    self.errors.append(f"{source.value}:{e}")
                    logger.error("Source %s failed: %s", source.value, e)
                    if options.fail_fast:
                        raise
        finally:
            if self._adapter is None:
                adapter.close()

        report = RunReport(
            run_id=run_id,
            started_at=started_at,
            finished_at=self._clock().isoformat(),
            mode=options.mode,
            source=options.source,
            dry_run=options.dry_run,
            totals=self.totals,
            rejection_reasons=dict(self.rejection_reasons),
            errors=self.errors,
        )
        paths = self.reporter.write(run_id, report, self.rejects)
        logger.info("Run %s finished: %s", run_id, report.totals.model_dump())
        return RunResult(report=report, report_path=paths.report_path, rejects_path=paths.rejects_path)

    def _run_source(self, run_id: str, source: SourceKey, adapter: BaseAdapter, writer: ListingWriter) -> None:
        options = self.options
        profile = get_profile(source)

        self._set_stage(source, Stage.FETCHING)
        raw_items = adapter.fetch(source, FetchRequest.from_options(options))
        self.totals.fetched += len(raw_items)

        self._set_stage(source, Stage.NORMALIZING)
        accepted: List[CanonicalListing] = []
        for raw in raw_items:
            result = self.canonicalizer.normalize(source, raw)
            if result.ok:
                accepted.append(result.listing)
            else:
                self._reject(result.reject)
        self.totals.normalized += len(accepted)

        self._set_stage(source, Stage.FILTERING)
        candidates = [listing for listing in dedupe(accepted) if self._keep(listing)]
        self.totals.deduped += len(candidates)
        candidates = self._skip_resumed(source, candidates)

        self._set_stage(source, Stage.WRITING)
        for listing in candidates:
            write = writer.upsert(listing, dry_run=options.dry_run)
            self.totals.inserted += write.inserted
            self.totals.updated += write.updated
            for warning in write.warnings:
                self.errors.append(f"{source.value}:{listing.source_id}:{warning}")
            self.totals.errors += len(write.warnings)
            if not options.dry_run:
                self.checkpoints.update(source, run_id, listing.source_id, self._clock().isoformat())

        self._set_stage(source, Stage.DONE)
        logger.info("%s: fetched=%d normalized=%d written=%d", profile.canonical.value,
                    len(raw_items), len(accepted), len(candidates))

    def _keep(self, listing: CanonicalListing) -> bool:
        options = self.options
        if options.active_only:
            decision = evaluate_active_only(listing)
            if not decision.keep:
                self._reject_listing(listing, decision.reason)
                return False
        rule = SoldWindowFilter(sold_only=options.sold_only, sold_within_months=options.sold_within_months)
        decision = evaluate_sold_window(listing, rule, now=self._clock())
        if not decision.keep:
            self._reject_listing(listing, decision.reason)
            return False
        return True

    def _skip_resumed(self, source: SourceKey, candidates: List[CanonicalListing]) -> List[CanonicalListing]:
        if not self.options.resume:
            return candidates
        cursor = self.checkpoints.cursor_for(source)
        if cursor is None or cursor.run_id != self.options.resume or not cursor.last_cursor:
            return candidates
        ids = [listing.source_id for listing in candidates]
        if cursor.last_cursor not in ids:
            return candidates
        position = ids.index(cursor.last_cursor) + 1
        logger.info("Resuming %s after %s: skipping %d already written listings",
                    source.value, cursor.last_cursor, position)
        return candidates[position:]

    def _reject(self, reject: NormalizeReject) -> None:
        self.totals.rejected += 1
        self.rejection_reasons[reject.reason.value] += 1
        self.rejects.append(reject)

    def _reject_listing(self, listing: CanonicalListing, reason: RejectReason) -> None:
        self._reject(NormalizeReject(
            source=listing.source,
            reason=reason,
            raw=listing.raw_payload,
            details={"status": listing.status, "sale_date": listing.sale_date},
        ))

    def _set_stage(self, source: SourceKey, stage: Stage) -> None:
        self.stages[source] = stage
        logger.debug("%s -> %s", source.value, stage.value)

    def _default_writer(self) -> ListingWriter:
        if self.options.dry_run or not self.settings.database_url:
            # dry runs never touch the store
            return ListingWriter(None)
        engine = make_engine(self.settings)
        init_db(engine)
        return ListingWriter(make_session_factory(engine))


def run_ingest(options: IngestOptions, settings: Optional[Settings] = None) -> RunResult:
    return IngestRunner(options, settings or Settings.from_env()).run()
