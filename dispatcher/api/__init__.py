"""HTTP surface: the dispatch trigger and queue administration routes."""

from .app import create_app

__all__ = ["create_app"]
