"""Shared test fixtures."""

import asyncio
import io
import re
from collections.abc import AsyncIterator
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from pathlib import Path

import pytest
from PIL import Image

from photo_library.adapters.multipart_reader import MultipartSectionReader
from photo_library.config import Settings
from photo_library.containers import AppContainer
from photo_library.domain.analysis import AnalysisOptions, AnalysisResult
from photo_library.domain.errors import PhotoConflictError, PhotoVersionConflict
from photo_library.domain.photos import Photo, Tag
from photo_library.services.enrichment import AnalysisClient, EnrichmentService
from photo_library.services.ingest import PhotoIngestor
from photo_library.services.photos import PhotoRepository, PhotoService
from photo_library.services.tags import TagRepository, TagService
from photo_library.services.uploads import UploadService

UPLOADED_AT = datetime(2024, 8, 1, 12, 30, tzinfo=UTC)
BOUNDARY = "photo-library-boundary"


def fixed_clock() -> datetime:
    return UPLOADED_AT


@dataclass
class InMemoryTagRepository(TagRepository):
    tags: dict[str, Tag] = field(default_factory=dict)

    def get_by_name(self, name: str) -> Tag | None:
        return self.tags.get(name)

    def get_or_create(self, name: str, description: str | None = None) -> Tag:
        existing = self.tags.get(name)
        if existing:
            return existing
        tag = Tag(name=name, description=description, id=len(self.tags) + 1)
        self.tags[name] = tag
        return tag


@dataclass
class InMemoryPhotoRepository(PhotoRepository):
    tag_repository: InMemoryTagRepository = field(default_factory=InMemoryTagRepository)
    photos: dict[int, Photo] = field(default_factory=dict)
    fail_create: bool = False
    update_calls: int = 0

    def create_photo(self, photo: Photo) -> Photo:
        if self.fail_create:
            raise RuntimeError("store unavailable")
        if self.slug_exists(photo.slug):
            raise PhotoConflictError(f"Slug '{photo.slug}' is already taken")
        photo_id = len(self.photos) + 1
        created = replace(
            photo, id=photo_id, version=0, tags=self._store_tags(photo.tags)
        )
        self.photos[photo_id] = created
        return created

    def get_photo(self, photo_id: int) -> Photo | None:
        return self.photos.get(photo_id)

    def get_by_slug(self, slug: str) -> Photo | None:
        for photo in self.photos.values():
            if photo.slug == slug:
                return photo
        return None

    def photo_exists(self, photo_id: int) -> bool:
        return photo_id in self.photos

    def slug_exists(self, slug: str) -> bool:
        return self.get_by_slug(slug) is not None

    def count_slugs(self, slug: str) -> int:
        pattern = re.compile(rf"{re.escape(slug)}(_\d+)?")
        return sum(1 for photo in self.photos.values() if pattern.fullmatch(photo.slug))

    def update_photo(self, photo: Photo, expected_version: int) -> Photo:
        self.update_calls += 1
        assert photo.id is not None
        current = self.photos.get(photo.id)
        if current is None or current.version != expected_version:
            raise PhotoVersionConflict(f"Photo {photo.id} changed")
        updated = replace(
            photo, version=expected_version + 1, tags=self._store_tags(photo.tags)
        )
        self.photos[photo.id] = updated
        return updated

    def _store_tags(self, tags: tuple[Tag, ...]) -> tuple[Tag, ...]:
        return tuple(
            tag
            if tag.id is not None
            else self.tag_repository.get_or_create(tag.name, tag.description)
            for tag in tags
        )


@dataclass
class FakeAnalysisClient(AnalysisClient):
    response: str = (
        '{"summary": "A red square", "description": "A plain red image.", '
        '"tags": ["red", "square"]}'
    )
    error: Exception | None = None
    delay: float = 0.0
    calls: list[dict[str, object]] = field(default_factory=list)

    async def generate(
        self,
        *,
        model: str,
        prompt: str,
        images: list[str],
        options: AnalysisOptions,
    ) -> AnalysisResult:
        self.calls.append(
            {"model": model, "prompt": prompt, "images": images, "options": options}
        )
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return AnalysisResult(response=self.response, model=model)


def make_image_bytes(
    image_format: str = "JPEG",
    size: tuple[int, int] = (1600, 1200),
    color: tuple[int, int, int] = (200, 30, 30),
    taken_at: str | None = None,
    dpi: tuple[int, int] | None = (72, 72),
) -> bytes:
    """Render a solid-color image in memory."""
    image = Image.new("RGB", size, color)
    options: dict[str, object] = {}
    if dpi is not None and image_format in {"JPEG", "PNG", "TIFF"}:
        options["dpi"] = dpi
    if taken_at is not None:
        exif = Image.Exif()
        exif[36867] = taken_at
        options["exif"] = exif
    buffer = io.BytesIO()
    image.save(buffer, format=image_format, **options)
    return buffer.getvalue()


@dataclass(frozen=True)
class Part:
    name: str
    data: bytes
    filename: str | None = None
    content_type: str | None = None


def build_multipart(parts: list[Part], boundary: str = BOUNDARY) -> bytes:
    """Encode parts as a multipart/form-data body."""
    body = bytearray()
    for part in parts:
        disposition = f'form-data; name="{part.name}"'
        if part.filename is not None:
            disposition += f'; filename="{part.filename}"'
        body += f"--{boundary}\r\n".encode()
        body += f"Content-Disposition: {disposition}\r\n".encode()
        if part.content_type:
            body += f"Content-Type: {part.content_type}\r\n".encode()
        body += b"\r\n" + part.data + b"\r\n"
    body += f"--{boundary}--\r\n".encode()
    return bytes(body)


def multipart_content_type(boundary: str = BOUNDARY) -> str:
    return f"multipart/form-data; boundary={boundary}"


async def stream_chunks(body: bytes, chunk_size: int = 1000) -> AsyncIterator[bytes]:
    for start in range(0, len(body), chunk_size):
        yield body[start : start + chunk_size]


def build_ingestor(
    storage_dir: Path,
    photo_repository: InMemoryPhotoRepository,
    max_upload_bytes: int = 64 * 1024 * 1024,
) -> PhotoIngestor:
    return PhotoIngestor(
        storage_base_dir=storage_dir,
        max_upload_bytes=max_upload_bytes,
        photo_repository=photo_repository,
        tag_service=TagService(photo_repository.tag_repository),
        clock=fixed_clock,
    )


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        supabase_url="https://example.supabase.co",
        supabase_service_key="service-key",
        storage_base_dir=tmp_path / "storage",
    )


@pytest.fixture
def photo_repository() -> InMemoryPhotoRepository:
    return InMemoryPhotoRepository()


@pytest.fixture
def analysis_client() -> FakeAnalysisClient:
    return FakeAnalysisClient()


@pytest.fixture
def container(
    settings: Settings,
    photo_repository: InMemoryPhotoRepository,
    analysis_client: FakeAnalysisClient,
) -> AppContainer:
    enrichment_service = EnrichmentService(
        client=analysis_client,
        photo_repository=photo_repository,
        model=settings.analysis_model,
        timeout_seconds=settings.analysis_timeout_seconds,
        max_attempts=settings.merge_max_attempts,
    )
    upload_service = UploadService(
        section_reader=MultipartSectionReader(
            max_part_bytes=settings.max_upload_bytes
        ),
        ingestor=build_ingestor(
            settings.storage_base_dir, photo_repository, settings.max_upload_bytes
        ),
        photo_repository=photo_repository,
        enrichment=enrichment_service,
    )

    async def close_resources() -> None:
        return None

    return AppContainer(
        settings=settings,
        photo_service=PhotoService(photo_repository),
        upload_service=upload_service,
        enrichment_service=enrichment_service,
        close_resources=close_resources,
    )
