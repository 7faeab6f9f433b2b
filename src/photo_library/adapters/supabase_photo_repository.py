"""Supabase-backed photo repository."""

import re
from dataclasses import dataclass, replace
from datetime import datetime

from postgrest.exceptions import APIError
from supabase import Client

from photo_library.adapters.supabase_tag_repository import (
    UNIQUE_VIOLATION,
    SupabaseTagRepository,
    parse_tag,
)
from photo_library.domain.errors import PhotoConflictError, PhotoVersionConflict
from photo_library.domain.photos import Dimension, Photo, Tag, Variant
from photo_library.services.photos import PhotoRepository

PHOTO_COLUMNS = "*, filepaths(*), tags(id, name, description)"


@dataclass
class SupabasePhotoRepository(PhotoRepository):
    """Supabase implementation for photos, their file paths and tag links."""

    client: Client
    tag_repository: SupabaseTagRepository

    def create_photo(self, photo: Photo) -> Photo:
        """Create the photo row with its file paths and tag links."""
        try:
            response = (
                self.client.table("photos").insert(_photo_row(photo)).execute()
            )
        except APIError as exc:
            if exc.code == UNIQUE_VIOLATION:
                raise PhotoConflictError(
                    f"Slug '{photo.slug}' is already taken"
                ) from exc
            raise
        if not response.data:
            raise RuntimeError("Failed to create photo")
        row = response.data[0]
        photo_id = int(row["id"])

        try:
            if photo.variants:
                self.client.table("filepaths").insert(
                    [_variant_row(photo_id, variant) for variant in photo.variants]
                ).execute()
            tags = self._link_tags(photo_id, photo.tags)
        except Exception:
            self._delete_photo(photo_id)
            raise
        return replace(
            photo, id=photo_id, version=int(row.get("version", 0)), tags=tags
        )

    def _delete_photo(self, photo_id: int) -> None:
        """Delete a photo row together with its file paths and tag links."""
        self.client.table("photo_tags").delete().eq("photo_id", photo_id).execute()
        self.client.table("filepaths").delete().eq("photo_id", photo_id).execute()
        self.client.table("photos").delete().eq("id", photo_id).execute()

    def get_photo(self, photo_id: int) -> Photo | None:
        """Return a photo by id, if present."""
        response = (
            self.client.table("photos")
            .select(PHOTO_COLUMNS)
            .eq("id", photo_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _parse_photo(response.data[0])

    def get_by_slug(self, slug: str) -> Photo | None:
        """Return a photo by slug, if present."""
        response = (
            self.client.table("photos")
            .select(PHOTO_COLUMNS)
            .eq("slug", slug)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _parse_photo(response.data[0])

    def photo_exists(self, photo_id: int) -> bool:
        response = (
            self.client.table("photos")
            .select("id")
            .eq("id", photo_id)
            .limit(1)
            .execute()
        )
        return bool(response.data)

    def slug_exists(self, slug: str) -> bool:
        response = (
            self.client.table("photos")
            .select("id")
            .eq("slug", slug)
            .limit(1)
            .execute()
        )
        return bool(response.data)

    def count_slugs(self, slug: str) -> int:
        """Count slugs equal to `slug` or suffixed with `_<n>`."""
        response = (
            self.client.table("photos")
            .select("slug")
            .like("slug", f"{slug}%")
            .execute()
        )
        pattern = re.compile(rf"{re.escape(slug)}(_\d+)?")
        return sum(
            1
            for row in response.data or []
            if pattern.fullmatch(str(row.get("slug", "")))
        )

    def update_photo(self, photo: Photo, expected_version: int) -> Photo:
        """Update text fields and link new tags when the version matches."""
        if photo.id is None:
            raise ValueError("Cannot update a photo without an id")
        response = (
            self.client.table("photos")
            .update(
                {
                    "title": photo.title,
                    "summary": photo.summary,
                    "description": photo.description,
                    "updated_at": photo.updated_at.isoformat(),
                    "version": expected_version + 1,
                }
            )
            .eq("id", photo.id)
            .eq("version", expected_version)
            .execute()
        )
        if not response.data:
            raise PhotoVersionConflict(
                f"Photo {photo.id} changed since version {expected_version}"
            )
        tags = self._link_tags(photo.id, photo.tags)
        return replace(photo, version=expected_version + 1, tags=tags)

    def _link_tags(self, photo_id: int, tags: tuple[Tag, ...]) -> tuple[Tag, ...]:
        stored = tuple(
            tag
            if tag.id is not None
            else self.tag_repository.get_or_create(tag.name, tag.description)
            for tag in tags
        )
        if stored:
            self.client.table("photo_tags").upsert(
                [{"photo_id": photo_id, "tag_id": tag.id} for tag in stored],
                on_conflict="photo_id,tag_id",
                ignore_duplicates=True,
            ).execute()
        return stored


def _photo_row(photo: Photo) -> dict[str, object]:
    return {
        "slug": photo.slug,
        "title": photo.title,
        "summary": photo.summary,
        "description": photo.description,
        "created_at": photo.created_at.isoformat(),
        "uploaded_at": photo.uploaded_at.isoformat(),
        "updated_at": photo.updated_at.isoformat(),
        "uploaded_by": photo.uploaded_by,
    }


def _variant_row(photo_id: int, variant: Variant) -> dict[str, object]:
    return {
        "photo_id": photo_id,
        "dimension": variant.dimension.value,
        "path": variant.path,
        "filename": variant.filename,
        "filesize": variant.filesize,
        "width": variant.width,
        "height": variant.height,
    }


def _parse_photo(row: dict[str, object]) -> Photo:
    """Parse a photo row with embedded file paths and tags."""
    uploaded_by = row.get("uploaded_by")
    return Photo(
        id=int(row["id"]),
        slug=str(row["slug"]),
        title=str(row.get("title", "")),
        summary=str(row.get("summary") or ""),
        description=str(row.get("description") or ""),
        created_at=datetime.fromisoformat(str(row["created_at"])),
        uploaded_at=datetime.fromisoformat(str(row["uploaded_at"])),
        updated_at=datetime.fromisoformat(str(row["updated_at"])),
        uploaded_by=int(uploaded_by) if uploaded_by is not None else None,
        variants=tuple(
            Variant(
                dimension=Dimension(str(item["dimension"])),
                path=str(item["path"]),
                filename=str(item["filename"]),
                filesize=int(item.get("filesize", 0)),
                width=int(item.get("width", 0)),
                height=int(item.get("height", 0)),
            )
            for item in row.get("filepaths") or []
        ),
        tags=tuple(parse_tag(item) for item in row.get("tags") or []),
        version=int(row.get("version", 0)),
    )
