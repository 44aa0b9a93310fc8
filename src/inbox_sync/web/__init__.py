"""Read API over the indexed email store."""

from .app import create_app

__all__ = ["create_app"]
