from ..errors import IngestConfigError
from .apify import ApifyAdapter
from .base import BaseAdapter, FetchRequest
from .direct import DirectHtmlAdapter

# Registry: --strategy value -> adapter class
ADAPTER_REGISTRY = {
    ApifyAdapter.name: ApifyAdapter,
    DirectHtmlAdapter.name: DirectHtmlAdapter,
}


def build_adapter(strategy: str, settings, **kwargs) -> BaseAdapter:
    try:
        adapter_cls = ADAPTER_REGISTRY[strategy]
    except KeyError:
        raise IngestConfigError(f"Unknown fetch strategy {strategy!r}; expected one of {sorted(ADAPTER_REGISTRY)}")
    return adapter_cls(settings, **kwargs)


__all__ = ["ADAPTER_REGISTRY", "ApifyAdapter", "BaseAdapter", "DirectHtmlAdapter", "FetchRequest", "build_adapter"]
