"""Tests for Pillow metadata and variant helpers."""

import io
from datetime import UTC, datetime, timedelta, timezone
from pathlib import Path

from PIL import Image

from photo_library.domain.photos import DERIVED_TIERS, Dimension, TierBounds
from photo_library.services.formats import ImageFormat
from photo_library.services.imaging import (
    aspect_ratio,
    derive_variant,
    parse_exif_datetime,
    read_metadata,
    target_side,
)
from tests.conftest import make_image_bytes

JPEG = ImageFormat(name="JPEG", mime_type="image/jpeg", extension="jpg")


def test_parse_exif_datetime_reads_exif_layout_as_utc() -> None:
    assert parse_exif_datetime("2024:07:20 15:12:48") == datetime(
        2024, 7, 20, 15, 12, 48, tzinfo=UTC
    )


def test_parse_exif_datetime_converts_offsets_to_utc() -> None:
    parsed = parse_exif_datetime("2024-07-20T15:12:48+02:00")

    assert parsed == datetime(
        2024, 7, 20, 15, 12, 48, tzinfo=timezone(timedelta(hours=2))
    )
    assert parsed is not None
    assert parsed.tzinfo == UTC


def test_parse_exif_datetime_ignores_garbage() -> None:
    assert parse_exif_datetime("not a date") is None
    assert parse_exif_datetime(None) is None
    assert parse_exif_datetime("    ") is None


def test_read_metadata_collects_size_dpi_and_capture_time() -> None:
    data = make_image_bytes(size=(64, 48), taken_at="2024:07:20 15:12:48")

    with Image.open(io.BytesIO(data)) as image:
        metadata = read_metadata(image)

    assert (metadata.width, metadata.height) == (64, 48)
    assert metadata.dpi == "72"
    assert metadata.taken_at == datetime(2024, 7, 20, 15, 12, 48, tzinfo=UTC)


def test_read_metadata_without_exif_has_no_capture_time() -> None:
    data = make_image_bytes("PNG", size=(10, 10), dpi=None)

    with Image.open(io.BytesIO(data)) as image:
        metadata = read_metadata(image)

    assert metadata.taken_at is None
    assert metadata.dpi == ""


def test_target_side_clamps_scaled_target() -> None:
    bounds = TierBounds(target=256, minimum=128, maximum=512)

    assert target_side(bounds, 1.0) == 256
    assert target_side(bounds, 1.5) == 384
    assert target_side(bounds, 4.0) == 512


def test_aspect_ratio_is_longest_over_shortest() -> None:
    assert aspect_ratio(1600, 1200) == 1600 / 1200
    assert aspect_ratio(1200, 1600) == 1600 / 1200
    assert aspect_ratio(0, 10) == 1.0


def test_derive_variant_resizes_when_both_sides_exceed_box(tmp_path: Path) -> None:
    output = tmp_path / "thumb.jpg"
    with Image.open(io.BytesIO(make_image_bytes(size=(1600, 1200)))) as image:
        derived = derive_variant(
            image, DERIVED_TIERS[Dimension.THUMBNAIL], JPEG, output
        )

    assert derived is not None
    assert derived.path == output
    assert max(derived.width, derived.height) <= 341
    assert derived.filesize == output.stat().st_size
    with Image.open(output) as written:
        assert written.format == "JPEG"


def test_derive_variant_skips_small_images(tmp_path: Path) -> None:
    output = tmp_path / "medium.jpg"
    with Image.open(io.BytesIO(make_image_bytes(size=(1600, 1200)))) as image:
        derived = derive_variant(image, DERIVED_TIERS[Dimension.MEDIUM], JPEG, output)

    assert derived is None
    assert not output.exists()
