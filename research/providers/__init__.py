from research.providers.base import (
    MultiTextSearchResponse,
    ProviderResponse,
    RawVisualMatch,
    RawWebResult,
    SearchProvider,
    TextSearchResponse,
    VisualSearchResponse,
)
from research.providers.serper import SerperProvider, classify_status

__all__ = [
    "MultiTextSearchResponse",
    "ProviderResponse",
    "RawVisualMatch",
    "RawWebResult",
    "SearchProvider",
    "SerperProvider",
    "TextSearchResponse",
    "VisualSearchResponse",
    "classify_status",
]
