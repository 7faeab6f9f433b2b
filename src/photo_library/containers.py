"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import create_client

from photo_library.adapters.multipart_reader import MultipartSectionReader
from photo_library.adapters.ollama_analysis_client import HttpxOllamaClient
from photo_library.adapters.openai_analysis_client import OpenAIAnalysisClient
from photo_library.adapters.supabase_photo_repository import SupabasePhotoRepository
from photo_library.adapters.supabase_tag_repository import SupabaseTagRepository
from photo_library.config import Settings
from photo_library.services.enrichment import EnrichmentService
from photo_library.services.ingest import PhotoIngestor
from photo_library.services.photos import PhotoService
from photo_library.services.tags import TagService
from photo_library.services.uploads import UploadService


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    photo_service: PhotoService
    upload_service: UploadService
    enrichment_service: EnrichmentService | None
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    tag_repository = SupabaseTagRepository(supabase_client)
    photo_repository = SupabasePhotoRepository(supabase_client, tag_repository)
    ingestor = PhotoIngestor(
        storage_base_dir=resolved_settings.storage_base_dir,
        max_upload_bytes=resolved_settings.max_upload_bytes,
        photo_repository=photo_repository,
        tag_service=TagService(tag_repository),
    )

    analysis_client: HttpxOllamaClient | OpenAIAnalysisClient | None = None
    enrichment_service: EnrichmentService | None = None
    if resolved_settings.analysis_enabled:
        if resolved_settings.analysis_backend == "openai":
            if not resolved_settings.openai_api_key:
                raise ValueError("OPENAI_API_KEY is required for the openai backend")
            analysis_client = OpenAIAnalysisClient.create(
                resolved_settings.openai_api_key
            )
        else:
            analysis_client = HttpxOllamaClient.create(resolved_settings.ollama_url)
        enrichment_service = EnrichmentService(
            client=analysis_client,
            photo_repository=photo_repository,
            model=resolved_settings.analysis_model,
            timeout_seconds=resolved_settings.analysis_timeout_seconds,
            max_attempts=resolved_settings.merge_max_attempts,
        )

    upload_service = UploadService(
        section_reader=MultipartSectionReader(
            max_part_bytes=resolved_settings.max_upload_bytes
        ),
        ingestor=ingestor,
        photo_repository=photo_repository,
        enrichment=enrichment_service,
    )

    async def close_resources() -> None:
        if analysis_client is not None:
            await analysis_client.close()

    return AppContainer(
        settings=resolved_settings,
        photo_service=PhotoService(photo_repository),
        upload_service=upload_service,
        enrichment_service=enrichment_service,
        close_resources=close_resources,
    )
