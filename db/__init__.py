"""Database helpers for MusicEZ."""

from db.catalog import CatalogStore

__all__ = ["CatalogStore"]
