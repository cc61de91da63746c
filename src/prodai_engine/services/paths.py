"""Object storage path conventions for generated media."""

import re
import time
from uuid import UUID

SLUG_MAX_LENGTH = 30

_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/webp": "webp",
    "image/png": "png",
    "video/mp4": "mp4",
    "video/webm": "webm",
    "video/quicktime": "mov",
}


def slugify(text: str, max_length: int = 50) -> str:
    """Lowercase, keep [a-z0-9-], collapse whitespace and dashes."""
    slug = re.sub(r"[^a-z0-9\s-]", "", text.lower())
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug).strip("-")
    return slug[:max_length]


def resolve_extension(mime_type: str) -> str:
    """File extension for a mime type; unknown images fall back to png."""
    if mime_type in _EXTENSIONS:
        return _EXTENSIONS[mime_type]
    return "mp4" if mime_type.startswith("video/") else "png"


def build_unit_path(
    product_id: UUID,
    job_id: UUID,
    variation_index: int,
    prompt: str | None,
    extension: str,
    timestamp_ms: int | None = None,
) -> str:
    """products/{product}/jobs/{job}/gen-{NN}-{slug}-{ts}.{ext}

    NN is the 1-based variation number, zero-padded to two digits.
    """
    number = f"{variation_index + 1:02d}"
    slug = slugify(prompt, SLUG_MAX_LENGTH) if prompt else ""
    slug_part = f"-{slug}" if slug else ""
    ts = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)
    return f"products/{product_id}/jobs/{job_id}/gen-{number}{slug_part}-{ts}.{extension}"


def _sibling_path(storage_path: str, folder: str, extension: str) -> str:
    directory, _, file_name = storage_path.rpartition("/")
    base_name = file_name.rsplit(".", 1)[0] if "." in file_name else file_name
    suffix = f"{base_name}.{extension}"
    return f"{directory}/{folder}/{suffix}" if directory else f"{folder}/{suffix}"


def thumbnail_path(storage_path: str, extension: str = "webp") -> str:
    return _sibling_path(storage_path, "thumbs", extension)


def preview_path(storage_path: str, extension: str = "webp") -> str:
    return _sibling_path(storage_path, "previews", extension)


def with_extension(storage_path: str, extension: str) -> str:
    """Replace the file extension of a path, or append one."""
    directory, _, file_name = storage_path.rpartition("/")
    base_name = file_name.rsplit(".", 1)[0] if "." in file_name else file_name
    renamed = f"{base_name}.{extension}"
    return f"{directory}/{renamed}" if directory else renamed
