# auction_ingest/report.py
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Union

from .schemas import NormalizeReject, RunReport
from .utils import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ReportPaths:
    report_path: Path
    rejects_path: Path


class RunReporter:
    """Writes ``<root>/<run_id>.json`` and ``<root>/rejects/<run_id>.jsonl``."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def report_path(self, run_id: str) -> Path:
        return self.root / f"{run_id}.json"

    def rejects_path(self, run_id: str) -> Path:
        return self.root / "rejects" / f"{run_id}.jsonl"

    def write(self, run_id: str, report: RunReport, rejects: Iterable[NormalizeReject]) -> ReportPaths:
        report_path = self.report_path(run_id)
        rejects_path = self.rejects_path(run_id)
        rejects_path.parent.mkdir(parents=True, exist_ok=True)

        report_path.write_text(json.dumps(report.model_dump(mode="json"), indent=2) + "\n", encoding="utf-8")
        lines = [json.dumps(reject.model_dump(mode="json"), default=str) for reject in rejects]
        rejects_path.write_text("\n".join(lines) + ("\n" if lines else ""), encoding="utf-8")
        logger.info("Wrote run report %s (%d rejects)", report_path, len(lines))
        return ReportPaths(report_path=report_path, rejects_path=rejects_path)

    def load(self, run_id: str) -> Optional[RunReport]:
        path = self.report_path(run_id)
        if not _safe_run_id(run_id) or not path.exists():
            return None
        return RunReport.model_validate_json(path.read_text(encoding="utf-8"))


def _safe_run_id(run_id: str) -> bool:
    # run ids come from URLs on the API side
    return bool(run_id) and "/" not in run_id and "\\" not in run_id and not run_id.startswith(".")
