"""On-disk layout for stored photo variants."""

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from photo_library.domain.errors import StorageUnavailable
from photo_library.domain.photos import Dimension

MAX_COLLISION_RETRIES = 4096


def resolve_directory(base: Path, dimension: Dimension, date: datetime) -> Path:
    """Return `base/<tier>/<year>/<month>/<day>` for a tier and date."""
    return base / dimension.value / str(date.year) / str(date.month) / str(date.day)


@dataclass(frozen=True)
class StoragePaths:
    """Tier directories for a single upload date."""

    source: Path
    medium: Path
    thumbnail: Path

    @classmethod
    def for_date(cls, base: Path, date: datetime) -> "StoragePaths":
        """Resolve every tier directory for a date."""
        return cls(
            source=resolve_directory(base, Dimension.SOURCE, date),
            medium=resolve_directory(base, Dimension.MEDIUM, date),
            thumbnail=resolve_directory(base, Dimension.THUMBNAIL, date),
        )

    def directory(self, dimension: Dimension) -> Path:
        if dimension == Dimension.MEDIUM:
            return self.medium
        if dimension == Dimension.THUMBNAIL:
            return self.thumbnail
        return self.source

    def create(self) -> None:
        """Create every tier directory."""
        try:
            for directory in (self.source, self.medium, self.thumbnail):
                directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageUnavailable(
                f"Failed to create storage directories under '{self.source}': {exc}"
            ) from exc


def resolve_collision(directory: Path, filename: str) -> tuple[str, int]:
    """Return a filename that is free in `directory` and the collision count.

    Conflicting names get `_copy`, then `_copy_2`, `_copy_3`, ... inserted
    before the extension.
    """
    stem, dot, extension = filename.rpartition(".")
    if not dot:
        stem, extension = filename, ""

    candidate = filename
    conflicts = 0
    while (directory / candidate).exists():
        conflicts += 1
        if conflicts > MAX_COLLISION_RETRIES:
            raise StorageUnavailable(
                f"Gave up resolving a free name for '{filename}' in '{directory}'"
            )
        appendix = "_copy" if conflicts == 1 else f"_copy_{conflicts}"
        candidate = f"{stem}{appendix}.{extension}" if dot else f"{filename}{appendix}"
    return candidate, conflicts
