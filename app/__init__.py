"""HTTP surface of the search engine.

Use the factory: ``from app.main import create_app``.
"""

from __future__ import annotations

from app.main import create_app

__all__ = ["create_app"]
