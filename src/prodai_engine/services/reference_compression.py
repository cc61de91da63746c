"""Compression of oversized reference images."""

from dataclasses import asdict, dataclass, field
from typing import Any
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from prodai_engine.adapters.storage.base import StorageGateway
from prodai_engine.config import get_settings
from prodai_engine.domain.models import ReferenceImage
from prodai_engine.errors import ImageProcessingError, StorageError
from prodai_engine.logging import get_logger
from prodai_engine.repositories.jobs import JobRepository
from prodai_engine.services.derivatives import DerivativeBuilder
from prodai_engine.services.paths import with_extension

logger = get_logger(__name__)

DEFAULT_BATCH_LIMIT = 50
MAX_BATCH_LIMIT = 200


def clamp_limit(limit: int | None) -> int:
    """Batch size between 1 and 200; missing or zero means the default."""
    return min(max(limit or DEFAULT_BATCH_LIMIT, 1), MAX_BATCH_LIMIT)


@dataclass
class ReferenceCompressionResult:
    """Outcome for one reference image."""

    image_id: UUID
    was_compressed: bool
    original_size: int
    compressed_size: int
    new_storage_path: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["image_id"] = str(self.image_id)
        return data


@dataclass
class CompressionSummary:
    """Totals for a batch run."""

    total: int = 0
    compressed: int = 0
    skipped: int = 0
    errors: int = 0
    results: list[ReferenceCompressionResult] = field(default_factory=list)

    def add(self, result: ReferenceCompressionResult) -> None:
        self.total += 1
        self.results.append(result)
        if result.error:
            self.errors += 1
        elif result.was_compressed:
            self.compressed += 1
        else:
            self.skipped += 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "compressed": self.compressed,
            "skipped": self.skipped,
            "errors": self.errors,
            "results": [result.to_dict() for result in self.results],
        }


class ReferenceCompressor:
    """Rewrites oversized reference images as WebP.

    For each image: download, compress, upload as .webp, point the
    reference row at the new object, then delete the old object when the
    path changed. Failures are reported per image and never stop a batch.
    """

    def __init__(
        self,
        repository: JobRepository,
        storage: StorageGateway,
        derivatives: DerivativeBuilder | None = None,
        bucket: str | None = None,
        min_size: int | None = None,
    ) -> None:
        settings = get_settings()
        self.repository = repository
        self.storage = storage
        self.derivatives = derivatives or DerivativeBuilder()
        self.bucket = bucket or settings.references_bucket
        self.min_size = min_size if min_size is not None else settings.reference_max_bytes

    async def compress_image(self, image: ReferenceImage) -> ReferenceCompressionResult:
        """Compress one reference image if it exceeds the limits."""
        try:
            original = await self.storage.download(self.bucket, image.storage_path)
        except StorageError as e:
            return ReferenceCompressionResult(
                image_id=image.id,
                was_compressed=False,
                original_size=0,
                compressed_size=0,
                error=f"Download failed: {e}",
            )

        try:
            result = self.derivatives.compress_if_oversized(original)
        except ImageProcessingError as e:
            return ReferenceCompressionResult(
                image_id=image.id,
                was_compressed=False,
                original_size=len(original),
                compressed_size=len(original),
                error=str(e),
            )

        if not result.changed:
            return ReferenceCompressionResult(
                image_id=image.id,
                was_compressed=False,
                original_size=result.original_size,
                compressed_size=result.compressed_size,
            )

        new_path = with_extension(image.storage_path, "webp")
        try:
            await self.storage.upload(
                self.bucket, new_path, result.data, result.mime_type, upsert=True
            )
        except StorageError as e:
            return ReferenceCompressionResult(
                image_id=image.id,
                was_compressed=False,
                original_size=result.original_size,
                compressed_size=result.compressed_size,
                error=f"Upload failed: {e}",
            )

        try:
            updated = await self.repository.update_reference_image(
                image.id, new_path, result.mime_type, result.compressed_size
            )
        except SQLAlchemyError as e:
            await self._discard_new_object(image, new_path)
            return ReferenceCompressionResult(
                image_id=image.id,
                was_compressed=True,
                original_size=result.original_size,
                compressed_size=result.compressed_size,
                new_storage_path=new_path,
                error=f"DB update failed: {e}",
            )
        if not updated:
            await self._discard_new_object(image, new_path)
            return ReferenceCompressionResult(
                image_id=image.id,
                was_compressed=True,
                original_size=result.original_size,
                compressed_size=result.compressed_size,
                new_storage_path=new_path,
                error="DB update failed: reference image no longer exists",
            )

        # The row points at the new object now; the old one can go
        if new_path != image.storage_path:
            try:
                await self.storage.delete(self.bucket, [image.storage_path])
            except StorageError as e:
                logger.warning(
                    "reference_old_object_not_deleted",
                    image_id=str(image.id),
                    path=image.storage_path,
                    error=str(e),
                )

        logger.info(
            "reference_compressed",
            image_id=str(image.id),
            original_size=result.original_size,
            compressed_size=result.compressed_size,
            path=new_path,
        )
        return ReferenceCompressionResult(
            image_id=image.id,
            was_compressed=True,
            original_size=result.original_size,
            compressed_size=result.compressed_size,
            new_storage_path=new_path,
        )

    async def _discard_new_object(self, image: ReferenceImage, new_path: str) -> None:
        """Remove an upload the row never came to reference."""
        if new_path == image.storage_path:
            return
        try:
            await self.storage.delete(self.bucket, [new_path])
        except StorageError as e:
            logger.warning(
                "reference_new_object_not_deleted",
                image_id=str(image.id),
                path=new_path,
                error=str(e),
            )

    async def compress_oversized(self, limit: int | None = None) -> CompressionSummary:
        """Compress the largest reference images above the size threshold."""
        images = await self.repository.list_oversized_reference_images(
            self.min_size, clamp_limit(limit)
        )
        summary = CompressionSummary()
        for image in images:
            summary.add(await self.compress_image(image))

        logger.info(
            "reference_compression_finished",
            total=summary.total,
            compressed=summary.compressed,
            skipped=summary.skipped,
            errors=summary.errors,
        )
        return summary
