"""Derivative assets: thumbnails, previews and reference compression."""

import io
from dataclasses import dataclass

from PIL import Image, ImageOps, UnidentifiedImageError

from prodai_engine.config import get_settings
from prodai_engine.errors import ImageProcessingError

WEBP_MIME = "image/webp"


@dataclass
class Derivative:
    """A re-encoded variant of an image."""

    data: bytes
    mime_type: str
    extension: str
    width: int
    height: int


@dataclass
class CompressionResult:
    """Outcome of compress_if_oversized."""

    data: bytes
    mime_type: str
    changed: bool
    original_size: int
    compressed_size: int
    width: int | None = None
    height: int | None = None


def _open(data: bytes) -> Image.Image:
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        raise ImageProcessingError(f"Cannot decode image: {e}") from e
    return image


def _webp_ready(image: Image.Image) -> Image.Image:
    if image.mode in ("RGB", "RGBA"):
        return image
    if "A" in image.getbands() or "transparency" in image.info:
        return image.convert("RGBA")
    return image.convert("RGB")


def _encode_webp(image: Image.Image, quality: int) -> bytes:
    buffer = io.BytesIO()
    _webp_ready(image).save(buffer, format="WEBP", quality=quality, method=4)
    return buffer.getvalue()


def probe_dimensions(data: bytes) -> tuple[int, int] | None:
    """Width and height after EXIF orientation, or None if undecodable."""
    try:
        image = ImageOps.exif_transpose(_open(data))
    except ImageProcessingError:
        return None
    return image.width, image.height


class DerivativeBuilder:
    """Builds WebP variants of generated and reference images.

    Every transform applies EXIF orientation first and never upscales.
    """

    def __init__(
        self,
        thumbnail_width: int | None = None,
        thumbnail_quality: int | None = None,
        preview_width: int | None = None,
        preview_quality: int | None = None,
        max_bytes: int | None = None,
        max_dimension: int | None = None,
        compression_quality: int | None = None,
    ) -> None:
        settings = get_settings()
        self.thumbnail_width = thumbnail_width or settings.thumbnail_width
        self.thumbnail_quality = thumbnail_quality or settings.thumbnail_quality
        self.preview_width = preview_width or settings.preview_width
        self.preview_quality = preview_quality or settings.preview_quality
        self.max_bytes = max_bytes or settings.reference_max_bytes
        self.max_dimension = max_dimension or settings.reference_max_dimension
        self.compression_quality = compression_quality or settings.reference_quality

    def _resize_to_width(self, data: bytes, width: int, quality: int) -> Derivative:
        image = ImageOps.exif_transpose(_open(data))
        if image.width > width:
            height = max(1, round(image.height * width / image.width))
            image = image.resize((width, height), Image.Resampling.LANCZOS)

        return Derivative(
            data=_encode_webp(image, quality),
            mime_type=WEBP_MIME,
            extension="webp",
            width=image.width,
            height=image.height,
        )

    def build_thumbnail(self, data: bytes) -> Derivative:
        """Thumbnail at the configured width (480 by default), WebP q72."""
        return self._resize_to_width(data, self.thumbnail_width, self.thumbnail_quality)

    def build_preview(self, data: bytes) -> Derivative:
        """Preview at the configured width (1600 by default), WebP q82."""
        return self._resize_to_width(data, self.preview_width, self.preview_quality)

    def compress_if_oversized(self, data: bytes) -> CompressionResult:
        """Shrink an image that exceeds the byte or dimension limit.

        Oversized images are fitted inside max_dimension x max_dimension and
        re-encoded as WebP. Anything within both limits comes back untouched
        with changed=False.
        """
        original_size = len(data)
        image = _open(data)
        mime_type = Image.MIME.get(image.format or "", "application/octet-stream")
        image = ImageOps.exif_transpose(image)

        if original_size <= self.max_bytes and max(image.size) <= self.max_dimension:
            return CompressionResult(
                data=data,
                mime_type=mime_type,
                changed=False,
                original_size=original_size,
                compressed_size=original_size,
                width=image.width,
                height=image.height,
            )

        image.thumbnail((self.max_dimension, self.max_dimension), Image.Resampling.LANCZOS)
        compressed = _encode_webp(image, self.compression_quality)
        return CompressionResult(
            data=compressed,
            mime_type=WEBP_MIME,
            changed=True,
            original_size=original_size,
            compressed_size=len(compressed),
            width=image.width,
            height=image.height,
        )
