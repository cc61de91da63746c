"""Tests for storage path conventions."""

from uuid import UUID

import pytest

from prodai_engine.services.paths import (
    build_unit_path,
    preview_path,
    resolve_extension,
    slugify,
    thumbnail_path,
    with_extension,
)

PRODUCT_ID = UUID("11111111-1111-1111-1111-111111111111")
JOB_ID = UUID("22222222-2222-2222-2222-222222222222")


class TestSlugify:
    """Tests for slugify."""

    def test_basic(self):
        assert slugify("Hello World") == "hello-world"

    def test_strips_punctuation_and_collapses_dashes(self):
        assert slugify("  Matte -- black   mug!! (12oz) ") == "matte-black-mug-12oz"

    def test_truncates(self):
        assert slugify("a" * 80, max_length=30) == "a" * 30

    def test_empty_for_symbols_only(self):
        assert slugify("!!!") == ""


class TestResolveExtension:
    """Tests for resolve_extension."""

    @pytest.mark.parametrize(
        "mime_type,expected",
        [
            ("image/jpeg", "jpg"),
            ("image/png", "png"),
            ("image/webp", "webp"),
            ("video/mp4", "mp4"),
            ("video/quicktime", "mov"),
            ("video/x-unknown", "mp4"),
            ("image/heic", "png"),
        ],
    )
    def test_mapping(self, mime_type, expected):
        assert resolve_extension(mime_type) == expected


class TestBuildUnitPath:
    """Tests for build_unit_path."""

    def test_layout(self):
        path = build_unit_path(PRODUCT_ID, JOB_ID, 0, "Walnut Desk Lamp", "png", 1700000000000)

        assert path == (
            f"products/{PRODUCT_ID}/jobs/{JOB_ID}/gen-01-walnut-desk-lamp-1700000000000.png"
        )

    def test_index_is_one_based_and_padded(self):
        path = build_unit_path(PRODUCT_ID, JOB_ID, 11, "lamp", "jpg", 1)

        assert path.endswith("/gen-12-lamp-1.jpg")

    def test_long_prompt_slug_is_capped(self):
        path = build_unit_path(PRODUCT_ID, JOB_ID, 0, "word " * 40, "png", 5)

        slug = path.rsplit("/", 1)[1][len("gen-01-") : -len("-5.png")]
        assert len(slug) <= 30

    def test_missing_prompt_omits_slug(self):
        path = build_unit_path(PRODUCT_ID, JOB_ID, 2, None, "mp4", 7)

        assert path.endswith("/gen-03-7.mp4")


class TestSiblingPaths:
    """Tests for derivative and renamed paths."""

    def test_thumbnail_and_preview(self):
        original = "products/p/jobs/j/gen-01-lamp-1.png"

        assert thumbnail_path(original) == "products/p/jobs/j/thumbs/gen-01-lamp-1.webp"
        assert preview_path(original) == "products/p/jobs/j/previews/gen-01-lamp-1.webp"

    def test_top_level_file(self):
        assert thumbnail_path("image.png", "jpg") == "thumbs/image.jpg"

    def test_with_extension(self):
        assert with_extension("refs/set/photo.png", "webp") == "refs/set/photo.webp"
        assert with_extension("refs/set/photo", "webp") == "refs/set/photo.webp"
