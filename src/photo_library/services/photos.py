"""Persistence interface and lookups for photos."""

from dataclasses import dataclass
from typing import Protocol

from photo_library.domain.photos import Photo


class PhotoRepository(Protocol):
    """Persistence interface for photos with their variants and tags."""

    def create_photo(self, photo: Photo) -> Photo:
        """Store a new photo and return it with its identity.

        Raises `PhotoConflictError` when the slug is taken.
        """

    def get_photo(self, photo_id: int) -> Photo | None:
        """Return the current stored state of a photo, if present."""

    def get_by_slug(self, slug: str) -> Photo | None:
        """Return a photo by its unique slug, if present."""

    def photo_exists(self, photo_id: int) -> bool:
        """Return true when a photo with this id is stored."""

    def slug_exists(self, slug: str) -> bool:
        """Return true when the slug is taken."""

    def count_slugs(self, slug: str) -> int:
        """Count stored slugs equal to `slug` or suffixed `slug_<n>`."""

    def update_photo(self, photo: Photo, expected_version: int) -> Photo:
        """Update text fields and add tag links if the version still matches.

        Raises `PhotoVersionConflict` when the stored version differs.
        """


@dataclass
class PhotoService:
    """Application service for photo lookups."""

    repository: PhotoRepository

    def get_by_slug(self, slug: str) -> Photo | None:
        """Return a photo by slug."""
        return self.repository.get_by_slug(slug.strip())

    def get_photo(self, photo_id: int) -> Photo | None:
        """Return a photo by id."""
        return self.repository.get_photo(photo_id)
