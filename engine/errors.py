"""Error taxonomy for the search pipeline."""

from __future__ import annotations


class ValidationError(Exception):
    """Rejected search input; surfaced to the caller as a 400."""

    TOO_SHORT = "too_short"
    TOO_LONG = "too_long"
    OUT_OF_RANGE = "out_of_range"
    INVALID_TYPE = "invalid_type"

    def __init__(self, code: str, message: str, *, field: str = "query") -> None:
        super().__init__(message)
        self.code = code
        self.field = field
        self.message = message


class CatalogUnavailable(Exception):
    """The local catalog store could not be queried."""


class CacheUnavailable(Exception):
    """The cache backend failed a read or write."""


class ImportNotFound(Exception):
    """The external track identifier does not resolve to a provider track."""

    def __init__(self, spotify_id: str) -> None:
        super().__init__(f"Spotify track not found: {spotify_id}")
        self.spotify_id = spotify_id


class ProviderError(Exception):
    """The external metadata provider failed a request."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
