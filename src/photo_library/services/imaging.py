"""Pillow helpers for decoding photos and writing resized variants."""

import io
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from PIL import Image
from PIL.Image import Resampling

from photo_library.domain.photos import TierBounds
from photo_library.services.formats import ImageFormat

_logger = logging.getLogger(__name__)

EXIF_IFD_POINTER = 0x8769
DATETIME_ORIGINAL_TAG = 36867
EXIF_DATETIME_FORMAT = "%Y:%m:%d %H:%M:%S"


@dataclass(frozen=True)
class ImageMetadata:
    """Facts read from a decoded source image."""

    width: int
    height: int
    taken_at: datetime | None
    dpi: str


@dataclass(frozen=True)
class DerivedImage:
    """A resized variant written to disk."""

    path: Path
    width: int
    height: int
    filesize: int


def read_metadata(image: Image.Image) -> ImageMetadata:
    """Extract dimensions, capture time and resolution from an image."""
    width, height = image.size
    return ImageMetadata(
        width=width,
        height=height,
        taken_at=parse_exif_datetime(_datetime_original(image)),
        dpi=_format_dpi(image.info.get("dpi")),
    )


def parse_exif_datetime(raw: object) -> datetime | None:
    """Parse an EXIF timestamp, trying a generic parse before the EXIF layout.

    Naive timestamps are taken to be UTC.
    """
    if isinstance(raw, bytes):
        raw = raw.decode("ascii", errors="ignore")
    if not isinstance(raw, str):
        return None
    value = raw.strip().strip("\x00")
    if not value:
        return None

    parsed: datetime | None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        try:
            parsed = datetime.strptime(value, EXIF_DATETIME_FORMAT)
        except ValueError:
            _logger.info("Unparsable EXIF DateTimeOriginal", extra={"value": value})
            return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def target_side(bounds: TierBounds, aspect_ratio: float) -> int:
    """Return the box side for a tier, used for both width and height."""
    scaled = bounds.target * aspect_ratio
    return int(min(max(scaled, bounds.minimum), bounds.maximum))


def aspect_ratio(width: int, height: int) -> float:
    shortest = min(width, height)
    if shortest <= 0:
        return 1.0
    return max(width, height) / shortest


def derive_variant(
    image: Image.Image,
    bounds: TierBounds,
    image_format: ImageFormat,
    output_path: Path,
) -> DerivedImage | None:
    """Write a resized copy when the source exceeds the tier box on both axes."""
    width, height = image.size
    side = target_side(bounds, aspect_ratio(width, height))
    if not (width > side and height > side):
        return None

    resized = image.copy()
    resized.thumbnail((side, side), resample=Resampling.LANCZOS)
    encoded = encode_image(resized, image_format)
    output_path.write_bytes(encoded)
    return DerivedImage(
        path=output_path,
        width=resized.width,
        height=resized.height,
        filesize=len(encoded),
    )


def encode_image(image: Image.Image, image_format: ImageFormat) -> bytes:
    """Encode an image with the codec it was uploaded in."""
    buffer = io.BytesIO()
    options: dict[str, object] = {}
    if image_format.name in {"JPEG", "WEBP"}:
        options["quality"] = 85
    if image_format.name == "JPEG" and image.mode not in {"RGB", "L", "CMYK"}:
        image = image.convert("RGB")
    image.save(buffer, format=image_format.name, **options)
    return buffer.getvalue()


def _datetime_original(image: Image.Image) -> object:
    exif = image.getexif()
    value = exif.get_ifd(EXIF_IFD_POINTER).get(DATETIME_ORIGINAL_TAG)
    if value is None:
        value = exif.get(DATETIME_ORIGINAL_TAG)
    return value


def _format_dpi(raw: object) -> str:
    if not isinstance(raw, tuple) or len(raw) != 2:
        return ""
    try:
        dpi_x, dpi_y = (round(float(value), 1) for value in raw)
    except (TypeError, ValueError):
        return ""
    if not dpi_x:
        return _format_number(dpi_y) if dpi_y else ""
    if not dpi_y or dpi_x == dpi_y:
        return _format_number(dpi_x)
    return f"{_format_number(dpi_x)}x{_format_number(dpi_y)}"


def _format_number(value: float) -> str:
    return str(int(value)) if value.is_integer() else str(value)
