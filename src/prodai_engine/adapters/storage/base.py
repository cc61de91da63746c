"""Base interface for object storage backends."""

from abc import ABC, abstractmethod
from collections.abc import Sequence

SIGNED_URL_TTL_SECONDS = 6 * 60 * 60


class StorageGateway(ABC):
    """Binary object storage with time-limited signed URLs.

    Implementations:
    - SupabaseStorageGateway: Supabase Storage REST API
    - LocalStorageGateway: filesystem with HMAC-signed URLs
    - StubStorageGateway: in-memory, for tests and dry runs
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Backend name identifier."""
        ...

    @abstractmethod
    async def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: str,
        upsert: bool = False,
    ) -> None:
        """Durably store an object.

        Raises:
            StorageError: the object could not be stored
        """
        ...

    @abstractmethod
    async def download(self, bucket: str, path: str) -> bytes:
        """Fetch an object's bytes.

        Raises:
            StorageError: missing object or backend failure
        """
        ...

    @abstractmethod
    async def delete(self, bucket: str, paths: Sequence[str]) -> None:
        """Remove objects; missing paths are ignored."""
        ...

    @abstractmethod
    async def create_signed_urls(
        self,
        bucket: str,
        paths: Sequence[str],
        ttl_seconds: int = SIGNED_URL_TTL_SECONDS,
    ) -> dict[str, str]:
        """Issue signed URLs for several paths in one call.

        Returns:
            Mapping of path to signed URL; paths that could not be signed
            are left out
        """
        ...

    async def create_signed_url(
        self,
        bucket: str,
        path: str,
        ttl_seconds: int = SIGNED_URL_TTL_SECONDS,
    ) -> str | None:
        """Issue a signed URL for a single path."""
        urls = await self.create_signed_urls(bucket, [path], ttl_seconds)
        return urls.get(path)
