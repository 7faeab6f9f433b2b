"""Image format detection from extensions and file signatures."""

import io
from dataclasses import dataclass

from PIL import Image, UnidentifiedImageError

from photo_library.domain.errors import UnrecognizedFormat
from photo_library.services.filenames import SUPPORTED_EXTENSIONS


@dataclass(frozen=True)
class ImageFormat:
    """Codec handle for a detected image format."""

    name: str
    mime_type: str
    extension: str


@dataclass(frozen=True)
class _Signature:
    offset: int
    magic: bytes


_JPEG = (_Signature(0, b"\xff\xd8\xff"),)
_TIFF = (
    _Signature(0, b"II*\x00"),
    _Signature(0, b"MM\x00*"),
    _Signature(0, b"II+\x00"),
    _Signature(0, b"MM\x00+"),
)

# Any listed signature is enough, except WEBP where every part must match.
MAGIC_NUMBERS: dict[str, tuple[_Signature, ...]] = {
    "jpg": _JPEG,
    "jpeg": _JPEG,
    "png": (_Signature(0, b"\x89PNG\r\n\x1a\n"),),
    "gif": (_Signature(0, b"GIF87a"), _Signature(0, b"GIF89a")),
    "tif": _TIFF,
    "tiff": _TIFF,
    "webp": (_Signature(0, b"RIFF"), _Signature(8, b"WEBP")),
}

_FORMATS: dict[str, tuple[str, str]] = {
    "jpg": ("JPEG", "image/jpeg"),
    "jpeg": ("JPEG", "image/jpeg"),
    "png": ("PNG", "image/png"),
    "gif": ("GIF", "image/gif"),
    "tif": ("TIFF", "image/tiff"),
    "tiff": ("TIFF", "image/tiff"),
    "webp": ("WEBP", "image/webp"),
}


# Multi-picture JPEGs from cameras decode as MPO.
_PILLOW_ALIASES = {"MPO": "JPEG"}


def sniff_format(filename: str, extension: str, data: bytes) -> ImageFormat:
    """Cross-check the claimed extension against the file content."""
    if not filename.lower().endswith(f".{extension}"):
        raise UnrecognizedFormat(
            f"Filename '{filename}' does not end with extension '{extension}'"
        )
    if extension not in SUPPORTED_EXTENSIONS or extension not in MAGIC_NUMBERS:
        raise UnrecognizedFormat(f"Extension '{extension}' is not supported")
    if not _matches_signature(extension, data):
        raise UnrecognizedFormat(
            f"Content of '{filename}' does not match a '{extension}' signature"
        )

    pillow_name, mime_type = _FORMATS[extension]
    detected = _detect_with_pillow(data)
    if detected != pillow_name:
        raise UnrecognizedFormat(
            f"Content of '{filename}' decodes as '{detected}', expected '{pillow_name}'"
        )
    return ImageFormat(name=pillow_name, mime_type=mime_type, extension=extension)


def _matches_signature(extension: str, data: bytes) -> bool:
    signatures = MAGIC_NUMBERS[extension]

    def matches(signature: _Signature) -> bool:
        end = signature.offset + len(signature.magic)
        return data[signature.offset : end] == signature.magic

    if extension == "webp":
        return all(matches(signature) for signature in signatures)
    return any(matches(signature) for signature in signatures)


def _detect_with_pillow(data: bytes) -> str | None:
    try:
        with Image.open(io.BytesIO(data)) as image:
            return _PILLOW_ALIASES.get(image.format, image.format)
    except (UnidentifiedImageError, OSError, ValueError):
        return None
