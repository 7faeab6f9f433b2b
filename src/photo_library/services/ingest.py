"""Ingestion of a single uploaded photo file."""

import io
import logging
import unicodedata
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from PIL import Image

from photo_library.domain.errors import (
    EmptyFile,
    FileTooLarge,
    MissingFilename,
    SlugTooLong,
    StorageUnavailable,
    TitleTooLong,
    UnrecognizedFormat,
)
from photo_library.domain.photos import (
    DERIVED_TIERS,
    MAX_SLUG_LENGTH,
    MAX_SUMMARY_LENGTH,
    MAX_TITLE_LENGTH,
    Dimension,
    Photo,
    Tag,
    UploadOverrides,
    Variant,
)
from photo_library.domain.uploads import UploadSection
from photo_library.services.filenames import SanitizedFilename, sanitize_filename
from photo_library.services.formats import ImageFormat, sniff_format
from photo_library.services.imaging import ImageMetadata, derive_variant, read_metadata
from photo_library.services.photos import PhotoRepository
from photo_library.services.storage import StoragePaths, resolve_collision
from photo_library.services.tags import TagService

_logger = logging.getLogger(__name__)

AUTO_SLUG_LENGTH = 123
MAX_SLUG_SUFFIX_ATTEMPTS = 4096

_MONTHS = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class _WrittenFiles:
    """Tracks files written for one item so a failure can remove them."""

    paths: list[Path] = field(default_factory=list)

    def add(self, path: Path) -> None:
        self.paths.append(path)

    def rollback(self) -> None:
        for path in reversed(self.paths):
            try:
                path.unlink(missing_ok=True)
            except OSError:
                _logger.exception(
                    "Failed to remove partially ingested file",
                    extra={"path": str(path)},
                )
        self.paths.clear()


@dataclass
class PhotoIngestor:
    """Turns one uploaded file into stored variants and an unsaved Photo."""

    storage_base_dir: Path
    max_upload_bytes: int
    photo_repository: PhotoRepository
    tag_service: TagService
    clock: Callable[[], datetime] = _utcnow

    def ingest(self, section: UploadSection, overrides: UploadOverrides) -> Photo:
        """Validate, store and describe an uploaded file."""
        if section.filename is None or not section.filename.strip():
            raise MissingFilename("The file part has no filename")
        sanitized = sanitize_filename(section.filename)

        if section.size <= 0 or not section.data:
            raise EmptyFile(f"File '{sanitized.filename}' is empty")
        if section.size > self.max_upload_bytes:
            raise FileTooLarge(
                f"File '{sanitized.filename}' is {section.size} bytes, "
                f"the limit is {self.max_upload_bytes}"
            )

        image_format = sniff_format(
            sanitized.filename, sanitized.extension, section.data
        )

        uploaded_at = self.clock()
        paths = StoragePaths.for_date(self.storage_base_dir, uploaded_at)
        paths.create()

        written = _WrittenFiles()
        try:
            return self._store_and_describe(
                section.data,
                sanitized,
                image_format,
                paths,
                uploaded_at,
                overrides,
                written,
            )
        except Exception:
            written.rollback()
            raise

    def discard(self, photo: Photo) -> None:
        """Remove every stored file of a photo that could not be persisted."""
        files = _WrittenFiles([variant.full_path for variant in photo.variants])
        files.rollback()

    def _store_and_describe(  # noqa: PLR0913
        self,
        data: bytes,
        sanitized: SanitizedFilename,
        image_format: ImageFormat,
        paths: StoragePaths,
        uploaded_at: datetime,
        overrides: UploadOverrides,
        written: _WrittenFiles,
    ) -> Photo:
        filename, conflicts = resolve_collision(paths.source, sanitized.filename)
        source_path = paths.source / filename
        try:
            with source_path.open("xb") as handle:
                written.add(source_path)
                handle.write(data)
        except OSError as exc:
            raise StorageUnavailable(
                f"Failed to write '{source_path}': {exc}"
            ) from exc

        filesize = len(data)
        try:
            with Image.open(io.BytesIO(data)) as image:
                image.load()
                metadata = read_metadata(image)
                variants = [
                    Variant(
                        dimension=Dimension.SOURCE,
                        path=str(paths.source),
                        filename=filename,
                        filesize=filesize,
                        width=metadata.width,
                        height=metadata.height,
                    )
                ]
                variants.extend(
                    self._derive_variants(
                        image, image_format, paths, filename, written
                    )
                )
        except (OSError, Image.DecompressionBombError) as exc:
            raise UnrecognizedFormat(
                f"Failed to decode '{filename}': {exc}"
            ) from exc

        created_at = metadata.taken_at or uploaded_at
        slug = self._resolve_slug(overrides.slug, filename, uploaded_at)
        title = _resolve_title(overrides.title, sanitized.filename, conflicts)
        summary = _truncate_summary(_summary(title, metadata, filesize))
        description = _description(
            created_at, uploaded_at, paths.source, metadata, filesize, conflicts
        )
        tags = self._resolve_tags(
            overrides.tags, created_at, uploaded_at, filesize, conflicts
        )

        _logger.info(
            "Finished storing upload",
            extra={
                "stored_filename": filename,
                "path": str(paths.source),
                "slug": slug,
            },
        )
        return Photo(
            slug=slug,
            title=title,
            summary=summary,
            description=description,
            created_at=created_at,
            uploaded_at=uploaded_at,
            updated_at=self.clock(),
            uploaded_by=overrides.uploaded_by,
            variants=tuple(variants),
            tags=tuple(tags),
        )

    def _derive_variants(
        self,
        image: Image.Image,
        image_format: ImageFormat,
        paths: StoragePaths,
        filename: str,
        written: _WrittenFiles,
    ) -> list[Variant]:
        variants: list[Variant] = []
        for dimension, bounds in DERIVED_TIERS.items():
            directory = paths.directory(dimension)
            output_path = directory / filename
            try:
                derived = derive_variant(image, bounds, image_format, output_path)
            except OSError as exc:
                written.add(output_path)
                raise StorageUnavailable(
                    f"Failed to write {dimension.value} variant '{output_path}': {exc}"
                ) from exc
            if derived is None:
                continue
            written.add(derived.path)
            variants.append(
                Variant(
                    dimension=dimension,
                    path=str(directory),
                    filename=filename,
                    filesize=derived.filesize,
                    width=derived.width,
                    height=derived.height,
                )
            )
        return variants

    def _resolve_slug(
        self, supplied: str | None, filename: str, uploaded_at: datetime
    ) -> str:
        slug = _normalize(supplied)
        if not slug:
            stem = filename.rpartition(".")[0] or filename
            slug = f"{uploaded_at.date().isoformat()}-{stem}"
            if len(slug) > AUTO_SLUG_LENGTH:
                slug = f"{slug[:120]}_{len(slug)}"
            slug = self._deduplicate_slug(slug)

        if len(slug) > MAX_SLUG_LENGTH:
            raise SlugTooLong(
                f"Slug exceeds maximum allowed length of {MAX_SLUG_LENGTH}"
            )
        return slug

    def _deduplicate_slug(self, slug: str) -> str:
        count = self.photo_repository.count_slugs(slug)
        if count <= 0:
            return slug
        for suffix in range(count, count + MAX_SLUG_SUFFIX_ATTEMPTS):
            candidate = f"{slug}_{suffix}"
            if not self.photo_repository.slug_exists(candidate):
                return candidate
        return f"{slug}_{count}"

    def _resolve_tags(
        self,
        names: tuple[str, ...],
        created_at: datetime,
        uploaded_at: datetime,
        filesize: int,
        conflicts: int,
    ) -> list[Tag]:
        tags = self.tag_service.resolve_many(names)
        automatic: list[Tag | None] = []
        if created_at != uploaded_at:
            automatic.append(self.tag_service.year_tag(created_at.year))
        automatic.append(self.tag_service.size_tag(filesize))
        if conflicts > 0:
            automatic.append(self.tag_service.copy_tag())

        known = {tag.name for tag in tags}
        for tag in automatic:
            if tag is not None and tag.name not in known:
                known.add(tag.name)
                tags.append(tag)
        return tags


def human_size(filesize: int) -> str:
    """Format a byte count as kB, MB or GB."""
    if filesize < 1024 * 1024:
        return f"{filesize / 1024:.1f}kB"
    if filesize >= 1024 * 1024 * 1024:
        return f"{filesize / (1024 * 1024 * 1024):.3f}GB"
    return f"{filesize / (1024 * 1024):.2f}MB"


def _normalize(value: str | None) -> str:
    if value is None:
        return ""
    return unicodedata.normalize("NFC", value).strip()


def _resolve_title(supplied: str | None, filename: str, conflicts: int) -> str:
    title = _normalize(supplied) or filename
    if conflicts > 0:
        title += f" (#{conflicts})"
    if len(title) > MAX_TITLE_LENGTH:
        raise TitleTooLong(
            f"Title exceeds maximum allowed length of {MAX_TITLE_LENGTH}"
        )
    return title


def _summary(title: str, metadata: ImageMetadata, filesize: int) -> str:
    if metadata.width and metadata.height:
        return f"{title} - {metadata.width}x{metadata.height}, {human_size(filesize)}."
    return f"{title} - {human_size(filesize)}."


def _truncate_summary(summary: str) -> str:
    if len(summary) > MAX_SUMMARY_LENGTH:
        return summary[: MAX_SUMMARY_LENGTH - 2] + ".."
    return summary


def _description(  # noqa: PLR0913
    created_at: datetime,
    uploaded_at: datetime,
    source_dir: Path,
    metadata: ImageMetadata,
    filesize: int,
    conflicts: int,
) -> str:
    taken = created_at != uploaded_at
    date = created_at if taken else uploaded_at
    details: list[str] = []
    if metadata.width and metadata.height:
        details.append(f"{metadata.width}x{metadata.height}")
    if metadata.dpi:
        details.append(f"{metadata.dpi} DPI")
    details.append(human_size(filesize))

    description = (
        f"{'Taken/Created' if taken else 'Uploaded'} {_MONTHS[date.month - 1]} "
        f"{date.year}, saved to '{source_dir}' ({', '.join(details)})"
    )
    if conflicts > 0:
        description += f". Potentially a copy of {conflicts} other files."
    return description
