"""Tag lookup and lazy creation by name."""

from dataclasses import dataclass
from typing import Protocol

from photo_library.domain.photos import MAX_TAG_NAME_LENGTH, Tag

LARGE_FILE_THRESHOLD = 3 * 1024 * 1024
SMALL_FILE_THRESHOLD = 256 * 1024
LARGE_FILE_TAG = "HD"
SMALL_FILE_TAG = "SD"
COPY_TAG = "Copy"


class TagRepository(Protocol):
    """Persistence interface for tags."""

    def get_by_name(self, name: str) -> Tag | None:
        """Return a tag by its unique name, if present."""

    def get_or_create(self, name: str, description: str | None = None) -> Tag:
        """Return the stored tag with this name, creating it when absent."""


@dataclass
class TagService:
    """Resolves tag names against the store."""

    repository: TagRepository

    def resolve(self, name: str, description: str | None = None) -> Tag:
        """Return the stored tag, or an unsaved one the store will create later."""
        existing = self.repository.get_by_name(name)
        if existing is not None:
            return existing
        return Tag(name=name, description=description)

    def resolve_many(self, names: list[str] | tuple[str, ...]) -> list[Tag]:
        """Resolve explicit tag names, dropping blanks and duplicates."""
        tags: list[Tag] = []
        seen: set[str] = set()
        for raw in names:
            name = raw.strip()
            if not name or name in seen or len(name) > MAX_TAG_NAME_LENGTH:
                continue
            seen.add(name)
            tags.append(self.resolve(name))
        return tags

    def year_tag(self, year: int) -> Tag:
        return self.resolve(str(year), f"Images taken/created during {year}")

    def size_tag(self, filesize: int) -> Tag | None:
        """Return the size-category tag for a file, if it has one."""
        if filesize >= LARGE_FILE_THRESHOLD:
            return self.resolve(LARGE_FILE_TAG, "Large or High-Definition Images.")
        if filesize < SMALL_FILE_THRESHOLD:
            return self.resolve(
                SMALL_FILE_TAG, "Small or Low-Definition Images and/or thumbnails."
            )
        return None

    def copy_tag(self) -> Tag:
        return self.resolve(
            COPY_TAG,
            (
                "Image might be a copy of another, its filename conflicts with "
                "at least one other file uploaded around the same time."
            ),
        )
