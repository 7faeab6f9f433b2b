"""Orchestration of multi-file photo uploads."""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import aclosing
from dataclasses import dataclass, replace
from typing import Protocol

from photo_library.domain.errors import IngestError, PhotoConflictError
from photo_library.domain.photos import Photo, UploadOverrides
from photo_library.domain.uploads import UploadSection
from photo_library.services.enrichment import EnrichmentService
from photo_library.services.ingest import PhotoIngestor
from photo_library.services.photos import PhotoRepository

_logger = logging.getLogger(__name__)

MAX_SECTIONS = 4096


class SectionReader(Protocol):
    """Interface for reading a multipart body one section at a time."""

    def ensure_multipart(self, content_type: str | None) -> None:
        """Raise `NotMultipart` unless the body can be read as sections."""

    def read_sections(
        self, content_type: str | None, chunks: AsyncIterator[bytes]
    ) -> AsyncIterator[UploadSection]:
        """Yield sections in the order they appear in the body."""


def parse_tags(raw: str) -> tuple[str, ...]:
    """Split a comma separated tag field, dropping blanks."""
    return tuple(tag.strip() for tag in raw.split(",") if tag.strip())


def apply_field(overrides: UploadOverrides, section: UploadSection) -> UploadOverrides:
    """Return overrides updated with a `title`, `slug` or `tags` field."""
    name = (section.name or "").strip().lower()
    value = section.text()
    if not value.strip():
        return overrides
    if name == "title":
        return replace(overrides, title=value)
    if name == "slug":
        return replace(overrides, slug=value)
    if name == "tags":
        return replace(overrides, tags=parse_tags(value))
    return overrides


@dataclass
class UploadService:
    """Reads an upload stream, ingests each file and schedules enrichment."""

    section_reader: SectionReader
    ingestor: PhotoIngestor
    photo_repository: PhotoRepository
    enrichment: EnrichmentService | None = None
    max_sections: int = MAX_SECTIONS

    async def upload_batch(
        self,
        content_type: str | None,
        chunks: AsyncIterator[bytes],
        uploaded_by: int | None = None,
    ) -> list[Photo]:
        """Ingest every file part and return the created photos in order.

        Enrichment runs concurrently with the remaining parts and is awaited
        before returning; the returned photos are the pre-enrichment state.
        """
        self.section_reader.ensure_multipart(content_type)

        overrides = UploadOverrides(uploaded_by=uploaded_by)
        photos: list[Photo] = []
        analyses: list[asyncio.Task[None]] = []
        try:
            async with aclosing(
                self.section_reader.read_sections(content_type, chunks)
            ) as sections:
                count = 0
                async for section in sections:
                    count += 1
                    if count > self.max_sections:
                        _logger.warning(
                            "Upload exceeded the section limit, ignoring the rest",
                            extra={"max_sections": self.max_sections},
                        )
                        break

                    if section.is_file:
                        photo = await self._upload_one(section, overrides)
                        overrides = overrides.cleared()
                        if photo is None:
                            continue
                        photos.append(photo)
                        if photo.thumbnail is not None and self.enrichment:
                            analyses.append(
                                asyncio.create_task(self.enrichment.enrich(photo))
                            )
                    elif section.is_field:
                        overrides = apply_field(overrides, section)
        except BaseException:
            for task in analyses:
                task.cancel()
            raise

        if analyses:
            _logger.info("Awaiting %s photo analyses", len(analyses))
            results = await asyncio.gather(*analyses, return_exceptions=True)
            for result in results:
                if isinstance(result, BaseException):
                    _logger.error("Photo analysis task failed", exc_info=result)
        return photos

    async def _upload_one(
        self, section: UploadSection, overrides: UploadOverrides
    ) -> Photo | None:
        try:
            photo = await asyncio.to_thread(self.ingestor.ingest, section, overrides)
        except IngestError as exc:
            _logger.warning(
                "Rejected uploaded file",
                extra={
                    "upload_filename": section.filename,
                    "error": type(exc).__name__,
                    "reason": str(exc),
                },
            )
            return None
        except Exception:
            _logger.exception(
                "Failed to upload a photo",
                extra={"upload_filename": section.filename},
            )
            return None

        if photo.id is None:
            photo = await self._create(photo)
            if photo is None:
                return None

        if photo.source is None:
            _logger.error(
                "Created photo has no source variant",
                extra={"slug": photo.slug, "photo_id": photo.id},
            )
            return None
        return photo

    async def _create(self, photo: Photo) -> Photo | None:
        try:
            created = await asyncio.to_thread(self.photo_repository.create_photo, photo)
        except PhotoConflictError as exc:
            _logger.warning(
                "Photo conflicts with an existing one",
                extra={"slug": photo.slug, "reason": str(exc)},
            )
            self.ingestor.discard(photo)
            return None
        except Exception:
            _logger.exception("Failed to store a photo", extra={"slug": photo.slug})
            self.ingestor.discard(photo)
            return None

        if created.id is None:
            _logger.error("Stored photo has no identity", extra={"slug": photo.slug})
            return None
        return created
