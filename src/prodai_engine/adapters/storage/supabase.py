"""Supabase Storage backend."""

from collections.abc import Sequence
from urllib.parse import quote

import httpx

from prodai_engine.adapters.storage.base import SIGNED_URL_TTL_SECONDS, StorageGateway
from prodai_engine.config import get_settings
from prodai_engine.errors import StorageError
from prodai_engine.logging import get_logger

logger = get_logger(__name__)


class SupabaseStorageGateway(StorageGateway):
    """Object storage through the Supabase Storage REST API.

    Uses the service role key, so bucket policies do not apply.
    """

    def __init__(
        self,
        url: str | None = None,
        service_key: str | None = None,
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        base = url or settings.supabase_url
        if not base:
            raise StorageError("SUPABASE_URL is not configured")
        self.base_url = f"{base.rstrip('/')}/storage/v1"
        self.service_key = service_key or settings.supabase_service_key
        self.timeout = timeout
        self._transport = transport

        if not self.service_key:
            logger.warning("Supabase service key not configured for storage")

    @property
    def name(self) -> str:
        return "supabase"

    def _headers(self, **extra: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.service_key}",
            "apikey": self.service_key or "",
            **extra,
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    @staticmethod
    def _object_path(bucket: str, path: str) -> str:
        return f"{quote(bucket)}/{quote(path.lstrip('/'))}"

    async def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: str,
        upsert: bool = False,
    ) -> None:
        try:
            async with self._client() as client:
                response = await client.post(
                    f"{self.base_url}/object/{self._object_path(bucket, path)}",
                    headers=self._headers(**{
                        "Content-Type": content_type,
                        "x-upsert": "true" if upsert else "false",
                    }),
                    content=data,
                )
        except httpx.HTTPError as e:
            raise StorageError(f"Upload of {path} failed: {e}") from e

        if response.status_code >= 400:
            raise StorageError(f"Upload of {path} failed ({response.status_code}): {response.text[:200]}")

        logger.debug("storage_uploaded", bucket=bucket, path=path, size=len(data))

    async def download(self, bucket: str, path: str) -> bytes:
        try:
            async with self._client() as client:
                response = await client.get(
                    f"{self.base_url}/object/{self._object_path(bucket, path)}",
                    headers=self._headers(),
                )
        except httpx.HTTPError as e:
            raise StorageError(f"Download of {path} failed: {e}") from e

        if response.status_code >= 400:
            raise StorageError(f"Download of {path} failed ({response.status_code})")
        return response.content

    async def delete(self, bucket: str, paths: Sequence[str]) -> None:
        if not paths:
            return
        try:
            async with self._client() as client:
                response = await client.request(
                    "DELETE",
                    f"{self.base_url}/object/{quote(bucket)}",
                    headers=self._headers(**{"Content-Type": "application/json"}),
                    json={"prefixes": list(paths)},
                )
        except httpx.HTTPError as e:
            raise StorageError(f"Delete in {bucket} failed: {e}") from e

        if response.status_code >= 400:
            raise StorageError(f"Delete in {bucket} failed ({response.status_code})")

        logger.debug("storage_deleted", bucket=bucket, count=len(paths))

    async def create_signed_urls(
        self,
        bucket: str,
        paths: Sequence[str],
        ttl_seconds: int = SIGNED_URL_TTL_SECONDS,
    ) -> dict[str, str]:
        if not paths:
            return {}
        try:
            async with self._client() as client:
                response = await client.post(
                    f"{self.base_url}/object/sign/{quote(bucket)}",
                    headers=self._headers(**{"Content-Type": "application/json"}),
                    json={"expiresIn": ttl_seconds, "paths": list(paths)},
                )
        except httpx.HTTPError as e:
            raise StorageError(f"Signing URLs in {bucket} failed: {e}") from e

        if response.status_code >= 400:
            raise StorageError(f"Signing URLs in {bucket} failed ({response.status_code})")

        signed: dict[str, str] = {}
        for entry in response.json():
            relative = entry.get("signedURL") or entry.get("signedUrl")
            if entry.get("error") or not relative or not entry.get("path"):
                continue
            signed[entry["path"]] = f"{self.base_url}{relative}"
        return signed
