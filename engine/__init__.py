from .errors import CatalogUnavailable, ImportNotFound, ProviderError, ValidationError
from .orchestrator import SearchOrchestrator
from .query_normalizer import normalize_query
from .types import Principal, SearchQuery, SearchResultSet

__all__ = [
    "CatalogUnavailable",
    "ImportNotFound",
    "Principal",
    "ProviderError",
    "SearchOrchestrator",
    "SearchQuery",
    "SearchResultSet",
    "ValidationError",
    "normalize_query",
]
