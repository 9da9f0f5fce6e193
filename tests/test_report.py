# tests/test_report.py
import json

from auction_ingest.report import RunReporter
from auction_ingest.schemas import NormalizeReject, RejectReason, RunReport, RunTotals
from auction_ingest.sources import CanonicalSource


def _report(run_id="run_1"):
    return RunReport(
        run_id=run_id,
        started_at="2026-01-01T00:00:00+00:00",
        finished_at="2026-01-01T00:01:00+00:00",
        mode="sample",
        source="bat",
        dry_run=True,
        totals=RunTotals(fetched=2, normalized=1, rejected=1),
        rejection_reasons={"non_domain_match": 1},
    )


def test_write_report_and_rejects(tmp_path):
    reject = NormalizeReject(source=CanonicalSource.BAT, reason=RejectReason.NON_DOMAIN_MATCH,
                             raw={"title": "Ferrari"}, details={})
    paths = RunReporter(tmp_path).write("run_1", _report(), [reject])
    assert paths.report_path == tmp_path / "run_1.json"
    assert paths.rejects_path == tmp_path / "rejects" / "run_1.jsonl"

    text = paths.report_path.read_text(encoding="utf-8")
    assert text.endswith("\n")
    assert json.loads(text)["totals"]["fetched"] == 2

    lines = paths.rejects_path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 1
    assert json.loads(lines[0]) == {
        "source": "BaT", "reason": "non_domain_match", "raw": {"title": "Ferrari"}, "details": {},
    }


def test_no_rejects_gives_empty_file(tmp_path):
    paths = RunReporter(tmp_path).write("run_2", _report("run_2"), [])
    assert paths.rejects_path.read_text(encoding="utf-8") == ""


def test_load(tmp_path):
    reporter = RunReporter(tmp_path)
    reporter.write("run_3", _report("run_3"), [])
    assert reporter.load("run_3").totals.normalized == 1
    assert reporter.load("run_missing") is None
    assert reporter.load("../run_3") is None
