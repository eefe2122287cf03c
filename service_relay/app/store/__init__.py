"""Redis store access."""

from .client import StoreClient, StoreProvider

__all__ = ["StoreClient", "StoreProvider"]
