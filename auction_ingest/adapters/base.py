# auction_ingest/adapters/base.py
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..sources import SourceKey

RawRecord = Dict[str, Any]


@dataclass(frozen=True)
class FetchRequest:
    mode: str = "incremental"
    limit: int = 100
    active_only: bool = False
    sold_only: bool = False
    since: Optional[str] = None
    from_: Optional[str] = None

    @classmethod
    def from_options(cls, options) -> "FetchRequest":
        return cls(
            mode=options.mode,
            limit=options.limit,
            active_only=options.active_only,
            sold_only=options.sold_only,
            since=options.since,
            from_=options.from_,
        )


class BaseAdapter(ABC):
    """
    Abstract base for the fetch strategies.

    An adapter turns (source, request) into raw records and nothing more:
    no normalization, no filtering. Transport concerns (auth, retries,
    rate limiting) stay inside the adapter.

    Attributes
    ----------
    name : str
        Strategy identifier used by ``ADAPTER_REGISTRY`` and ``--strategy``.
    """

    name: str = ""

    def __init__(self, settings) -> None:
        self.settings = settings

    @abstractmethod
    def fetch(self, source: SourceKey, request: FetchRequest) -> List[RawRecord]:
        """
        Return at most ``request.limit`` raw records for ``source``.

        An empty result is ``[]``. Raises ``SourceFetchError`` only when the
        source cannot be read at all.
        """

    def close(self) -> None:
        """Release any transport resources. Safe to call more than once."""
