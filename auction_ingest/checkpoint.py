# auction_ingest/checkpoint.py
"""Per-source ingest checkpoints stored as one versioned JSON envelope.

``load`` is best-effort and falls back to an empty envelope. ``update`` is a
read-modify-write of the whole file with no locking, so only one ingest
process may use a given checkpoint path at a time.
"""
import json
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from pydantic import ValidationError

from .schemas import CHECKPOINT_VERSION, Checkpoint, SourceCursor
from .utils import get_logger

logger = get_logger(__name__)


class CheckpointStore:
    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def load(self) -> Checkpoint:
        if not self.path.exists():
            return Checkpoint()
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
            checkpoint = Checkpoint.model_validate(payload)
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            logger.warning("Ignoring unreadable checkpoint %s: %s", self.path, e)
            return Checkpoint()
        if checkpoint.version != CHECKPOINT_VERSION:
            logger.warning("Ignoring checkpoint %s with version %s", self.path, checkpoint.version)
            return Checkpoint()
        return checkpoint

    def update(self, source: str, run_id: str, cursor: Optional[str],
               seen_at: Optional[str] = None) -> Checkpoint:
        current = self.load()
        sources = dict(current.sources)
        sources[_key(source)] = SourceCursor(last_cursor=cursor, last_seen_at=seen_at, run_id=run_id)
        updated = Checkpoint(
            version=CHECKPOINT_VERSION,
            updated_at=datetime.now(timezone.utc).isoformat(),
            sources=sources,
        )
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(updated.model_dump(), indent=2) + "\n", encoding="utf-8")
        return updated

    def cursor_for(self, source: str) -> Optional[SourceCursor]:
        return self.load().sources.get(_key(source))


def load_checkpoint(path) -> Checkpoint:
    return CheckpointStore(path).load()


def update_checkpoint(path, source, run_id, cursor, seen_at=None) -> Checkpoint:
    return CheckpointStore(path).update(source, run_id, cursor, seen_at)


def _key(source) -> str:
    return source.value if isinstance(source, Enum) else str(source)
