# tests/test_checkpoint.py
import json

from auction_ingest.checkpoint import CheckpointStore, load_checkpoint, update_checkpoint
from auction_ingest.sources import SourceKey


def test_missing_file_gives_default(tmp_path):
    checkpoint = load_checkpoint(tmp_path / "nope.json")
    assert checkpoint.version == 1
    assert checkpoint.sources == {}


def test_update_then_load_round_trips_cursor(tmp_path):
    path = tmp_path / "nested" / "checkpoints.json"
    update_checkpoint(path, SourceKey.BAT, "run_1", "123", "2026-01-01T00:00:00+00:00")
    loaded = load_checkpoint(path)
    assert loaded.sources["bat"].last_cursor == "123"
    assert loaded.sources["bat"].run_id == "run_1"
    assert path.read_text(encoding="utf-8").endswith("\n")


def test_update_keeps_other_sources(tmp_path):
    store = CheckpointStore(tmp_path / "cp.json")
    store.update("bat", "run_1", "a")
    store.update("carsandbids", "run_1", "b")
    store.update("bat", "run_2", "c")
    loaded = store.load()
    assert loaded.sources["bat"].last_cursor == "c"
    assert loaded.sources["carsandbids"].last_cursor == "b"
    assert store.cursor_for(SourceKey.CARSANDBIDS).run_id == "run_1"


def test_corrupt_file_gives_default(tmp_path):
    path = tmp_path / "cp.json"
    path.write_text("{not json", encoding="utf-8")
    assert CheckpointStore(path).load().sources == {}


def test_version_mismatch_gives_default(tmp_path):
    path = tmp_path / "cp.json"
    path.write_text(json.dumps({"version": 2, "updated_at": "x", "sources": {"bat": {"last_cursor": "1"}}}))
    assert CheckpointStore(path).load().sources == {}
