"""Domain models for photos, their stored variants and tags."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from pathlib import Path

MAX_SLUG_LENGTH = 127
MAX_TITLE_LENGTH = 255
MAX_SUMMARY_LENGTH = 255
MAX_TAG_NAME_LENGTH = 127


class Dimension(StrEnum):
    """Resolution tier of a stored photo file."""

    SOURCE = "source"
    MEDIUM = "medium"
    THUMBNAIL = "thumbnail"


@dataclass(frozen=True)
class TierBounds:
    """Target side length and clamp range for a derived tier."""

    target: int
    minimum: int
    maximum: int


DERIVED_TIERS: dict[Dimension, TierBounds] = {
    Dimension.MEDIUM: TierBounds(target=1024, minimum=720, maximum=1920),
    Dimension.THUMBNAIL: TierBounds(target=256, minimum=128, maximum=512),
}


@dataclass(frozen=True)
class Variant:
    """A single file on disk representing a photo at one tier."""

    dimension: Dimension
    path: str
    filename: str
    filesize: int
    width: int
    height: int

    @property
    def full_path(self) -> Path:
        return Path(self.path) / self.filename


@dataclass(frozen=True)
class Tag:
    """A named tag, `id` is None until the store creates it."""

    name: str
    description: str | None = None
    id: int | None = None


@dataclass(frozen=True)
class Photo:
    """Photo aggregate root."""

    slug: str
    title: str
    summary: str
    description: str
    created_at: datetime
    uploaded_at: datetime
    updated_at: datetime
    uploaded_by: int | None = None
    variants: tuple[Variant, ...] = ()
    tags: tuple[Tag, ...] = ()
    id: int | None = None
    version: int = 0

    def variant(self, dimension: Dimension) -> Variant | None:
        """Return the variant for a tier, if present."""
        for variant in self.variants:
            if variant.dimension == dimension:
                return variant
        return None

    @property
    def source(self) -> Variant | None:
        return self.variant(Dimension.SOURCE)

    @property
    def thumbnail(self) -> Variant | None:
        return self.variant(Dimension.THUMBNAIL)


@dataclass(frozen=True)
class UploadOverrides:
    """Field values that apply to the next file part of an upload."""

    slug: str | None = None
    title: str | None = None
    tags: tuple[str, ...] = field(default_factory=tuple)
    uploaded_by: int | None = None

    def cleared(self) -> "UploadOverrides":
        """Return empty overrides that keep only the acting uploader."""
        return UploadOverrides(uploaded_by=self.uploaded_by)
