"""Adapters for external services."""

from prodai_engine.adapters.providers.base import MediaProvider
from prodai_engine.adapters.storage.base import StorageGateway

__all__ = [
    "MediaProvider",
    "StorageGateway",
]
