"""Admin endpoints for storage maintenance."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from prodai_engine.api.deps import ReferenceCompressorDep, verify_trigger_secret
from prodai_engine.logging import get_logger
from prodai_engine.services.reference_compression import DEFAULT_BATCH_LIMIT

router = APIRouter(
    prefix="/admin",
    tags=["Admin"],
    dependencies=[Depends(verify_trigger_secret)],
)
logger = get_logger(__name__)


class CompressReferencesRequest(BaseModel):
    """Batch size for a compression run; out-of-range values are clamped."""

    limit: int | None = Field(default=DEFAULT_BATCH_LIMIT)


class CompressionResultResponse(BaseModel):
    image_id: str
    was_compressed: bool
    original_size: int
    compressed_size: int
    new_storage_path: str | None = None
    error: str | None = None


class CompressReferencesResponse(BaseModel):
    """Totals and per-image results of a compression run."""

    total: int
    compressed: int
    skipped: int
    errors: int
    results: list[CompressionResultResponse]


@router.post(
    "/compress-references",
    response_model=CompressReferencesResponse,
    summary="Compress oversized reference images",
)
async def compress_references(
    compressor: ReferenceCompressorDep,
    request: CompressReferencesRequest | None = None,
) -> CompressReferencesResponse:
    """Compress the largest reference images above the size threshold."""
    limit = request.limit if request else DEFAULT_BATCH_LIMIT
    summary = await compressor.compress_oversized(limit)
    logger.info(
        "compress_references_requested",
        total=summary.total,
        compressed=summary.compressed,
        errors=summary.errors,
    )
    return CompressReferencesResponse(**summary.to_dict())
