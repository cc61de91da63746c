"""Local filesystem storage backend."""

import hashlib
import hmac
import time
from collections.abc import Sequence
from pathlib import Path
from urllib.parse import quote

from prodai_engine.adapters.storage.base import SIGNED_URL_TTL_SECONDS, StorageGateway
from prodai_engine.config import get_settings
from prodai_engine.errors import StorageError
from prodai_engine.logging import get_logger

logger = get_logger(__name__)


class LocalStorageGateway(StorageGateway):
    """Stores objects under base_path/<bucket>/<path>.

    Signed URLs carry an expiry and an HMAC-SHA256 signature over
    bucket, path and expiry; verify_signature checks them.
    """

    def __init__(
        self,
        base_path: Path | None = None,
        base_url: str | None = None,
        signing_secret: str | None = None,
    ) -> None:
        settings = get_settings()
        self.base_path = base_path or Path(settings.local_storage_path)
        self.base_url = (base_url or settings.local_storage_base_url).rstrip("/")
        self._secret = (signing_secret or settings.storage_signing_secret).encode()

    @property
    def name(self) -> str:
        return "local"

    def _resolve(self, bucket: str, path: str) -> Path:
        root = (self.base_path / bucket).resolve()
        target = (root / path.lstrip("/")).resolve()
        if not target.is_relative_to(root):
            raise StorageError(f"Path escapes bucket: {path}")
        return target

    async def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: str,
        upsert: bool = False,
    ) -> None:
        target = self._resolve(bucket, path)
        if target.exists() and not upsert:
            raise StorageError(f"Object already exists: {bucket}/{path}")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            raise StorageError(f"Upload of {path} failed: {e}") from e

        logger.debug("storage_uploaded", bucket=bucket, path=path, size=len(data))

    async def download(self, bucket: str, path: str) -> bytes:
        target = self._resolve(bucket, path)
        try:
            return target.read_bytes()
        except OSError as e:
            raise StorageError(f"Download of {path} failed: {e}") from e

    async def delete(self, bucket: str, paths: Sequence[str]) -> None:
        for path in paths:
            try:
                self._resolve(bucket, path).unlink(missing_ok=True)
            except OSError as e:
                raise StorageError(f"Delete of {path} failed: {e}") from e

    def _signature(self, bucket: str, path: str, expires: int) -> str:
        message = f"{bucket}/{path}:{expires}".encode()
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()

    async def create_signed_urls(
        self,
        bucket: str,
        paths: Sequence[str],
        ttl_seconds: int = SIGNED_URL_TTL_SECONDS,
    ) -> dict[str, str]:
        expires = int(time.time()) + ttl_seconds
        return {
            path: (
                f"{self.base_url}/{quote(bucket)}/{quote(path)}"
                f"?expires={expires}&signature={self._signature(bucket, path, expires)}"
            )
            for path in paths
        }

    def verify_signature(self, bucket: str, path: str, expires: int, signature: str) -> bool:
        """Check a signed URL's signature and expiry."""
        if expires < int(time.time()):
            return False
        return hmac.compare_digest(self._signature(bucket, path, expires), signature)
