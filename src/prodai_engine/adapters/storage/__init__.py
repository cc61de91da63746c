"""Object storage adapters."""

from prodai_engine.adapters.storage.base import SIGNED_URL_TTL_SECONDS, StorageGateway
from prodai_engine.adapters.storage.local import LocalStorageGateway
from prodai_engine.adapters.storage.stub import StubStorageGateway
from prodai_engine.adapters.storage.supabase import SupabaseStorageGateway
from prodai_engine.config import settings


def get_storage_gateway() -> StorageGateway:
    """Get the configured storage backend."""
    backend = getattr(settings, "storage_backend", "local").lower()

    if backend == "supabase":
        return SupabaseStorageGateway()
    return LocalStorageGateway()


__all__ = [
    "SIGNED_URL_TTL_SECONDS",
    "LocalStorageGateway",
    "StorageGateway",
    "StubStorageGateway",
    "SupabaseStorageGateway",
    "get_storage_gateway",
]
