"""HTTP routers."""

from app.routers import indexing, search, stats

__all__ = ["indexing", "search", "stats"]
