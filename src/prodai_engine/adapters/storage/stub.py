"""In-memory storage backend for tests and dry runs."""

from collections.abc import Sequence

from prodai_engine.adapters.storage.base import SIGNED_URL_TTL_SECONDS, StorageGateway
from prodai_engine.errors import StorageError


class StubStorageGateway(StorageGateway):
    """Keeps objects in a dict keyed by (bucket, path).

    fail_uploads makes the next N uploads raise StorageError.
    """

    def __init__(self, fail_uploads: int = 0) -> None:
        self.objects: dict[tuple[str, str], tuple[bytes, str]] = {}
        self.fail_uploads = fail_uploads
        self.upload_calls = 0
        self.sign_calls = 0

    @property
    def name(self) -> str:
        return "stub"

    async def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: str,
        upsert: bool = False,
    ) -> None:
        self.upload_calls += 1
        if self.fail_uploads > 0:
            self.fail_uploads -= 1
            raise StorageError(f"Simulated upload failure for {path}")
        if (bucket, path) in self.objects and not upsert:
            raise StorageError(f"Object already exists: {bucket}/{path}")
        self.objects[(bucket, path)] = (data, content_type)

    async def download(self, bucket: str, path: str) -> bytes:
        try:
            return self.objects[(bucket, path)][0]
        except KeyError:
            raise StorageError(f"Object not found: {bucket}/{path}") from None

    async def delete(self, bucket: str, paths: Sequence[str]) -> None:
        for path in paths:
            self.objects.pop((bucket, path), None)

    async def create_signed_urls(
        self,
        bucket: str,
        paths: Sequence[str],
        ttl_seconds: int = SIGNED_URL_TTL_SECONDS,
    ) -> dict[str, str]:
        self.sign_calls += 1
        return {
            path: f"stub://{bucket}/{path}?ttl={ttl_seconds}"
            for path in paths
            if (bucket, path) in self.objects
        }

    def paths(self, bucket: str) -> list[str]:
        """Stored paths in a bucket, sorted."""
        return sorted(path for b, path in self.objects if b == bucket)
