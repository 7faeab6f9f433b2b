"""Sanitizing of client-supplied filenames."""

import html
import unicodedata
from dataclasses import dataclass

from photo_library.domain.errors import (
    InvalidName,
    MissingFilename,
    UnsupportedExtension,
)

MAX_FILENAME_LENGTH = 127
SUPPORTED_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "gif", "webp", "tif", "tiff"})

_PATH_SEPARATORS = ("/", "\\")


@dataclass(frozen=True)
class SanitizedFilename:
    """A filename that is safe to use on disk."""

    filename: str
    stem: str
    extension: str


def sanitize_filename(untrusted: str | None) -> SanitizedFilename:
    """Turn an untrusted filename into a bounded, encoded on-disk name."""
    if untrusted is None or not untrusted.strip():
        raise MissingFilename("The uploaded file has no filename")

    encoded = html.escape(unicodedata.normalize("NFC", untrusted).strip())
    for separator in _PATH_SEPARATORS:
        encoded = encoded.replace(separator, "_")

    *base_parts, raw_extension = encoded.split(".")
    base = "_".join(base_parts).strip()
    if not base or not raw_extension:
        raise InvalidName(f"Filename '{encoded}' has no name or extension")

    base = base[: MAX_FILENAME_LENGTH - len(raw_extension) - 1]
    filename = f"{base}.{raw_extension}"
    if _is_suspicious(filename):
        raise InvalidName(f"Suspicious filename '{filename}'")

    extension = raw_extension.lower()
    if extension not in SUPPORTED_EXTENSIONS:
        raise UnsupportedExtension(f"Extension '{extension}' is not supported")

    return SanitizedFilename(filename=filename, stem=base, extension=extension)


def _is_suspicious(filename: str) -> bool:
    return (
        not filename
        or "&&" in filename
        or ".." in filename
        or any(separator in filename for separator in _PATH_SEPARATORS)
        or len(filename) > MAX_FILENAME_LENGTH
    )
