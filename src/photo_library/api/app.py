"""FastAPI application factory."""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Header, HTTPException, Request, status
from fastapi.responses import FileResponse

from photo_library.api.photo_models import (
    AnalysisResponse,
    PhotoResponse,
    UploadResponse,
)
from photo_library.app_logging import configure_logging
from photo_library.config import parse_uploader_id
from photo_library.containers import AppContainer
from photo_library.domain.errors import NotMultipart
from photo_library.domain.photos import Dimension, Photo


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.post(
        "/photos/upload",
        status_code=status.HTTP_201_CREATED,
        response_model=UploadResponse,
    )
    async def upload_photos(
        request: Request,
        x_uploader_id: str | None = Header(default=None),
    ) -> UploadResponse:
        """Stream a multipart body and ingest every file part."""
        state_container: AppContainer = request.app.state.container
        try:
            photos = await state_container.upload_service.upload_batch(
                request.headers.get("content-type"),
                request.stream(),
                uploaded_by=parse_uploader_id(x_uploader_id),
            )
        except NotMultipart as exc:
            logger.warning("Rejected upload request", extra={"reason": str(exc)})
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)
            ) from exc
        return UploadResponse(photos=[PhotoResponse.from_photo(p) for p in photos])

    async def load_photo(request: Request, photo_id: int) -> Photo:
        state_container: AppContainer = request.app.state.container
        photo = await asyncio.to_thread(
            state_container.photo_service.get_photo, photo_id
        )
        if photo is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail="Photo not found"
            )
        return photo

    @app.get("/photos/{photo_id:int}", response_model=PhotoResponse)
    async def get_photo(photo_id: int, request: Request) -> PhotoResponse:
        """Return a stored photo by id."""
        return PhotoResponse.from_photo(await load_photo(request, photo_id))

    @app.get("/photos/{photo_id:int}/{dimension}")
    async def get_photo_file(
        photo_id: int, dimension: Dimension, request: Request
    ) -> FileResponse:
        """Return the stored image file of one tier."""
        photo = await load_photo(request, photo_id)
        variant = photo.variant(dimension)
        if variant is None or not await asyncio.to_thread(variant.full_path.is_file):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"No {dimension.value} image for this photo",
            )
        return FileResponse(variant.full_path, filename=variant.filename)

    @app.post("/photos/{photo_id:int}/analyze", response_model=AnalysisResponse)
    async def analyze_photo(
        photo_id: int,
        request: Request,
        dimension: Dimension = Dimension.THUMBNAIL,
    ) -> AnalysisResponse:
        """Analyze one tier of a stored photo and merge the result into it."""
        state_container: AppContainer = request.app.state.container
        enrichment_service = state_container.enrichment_service
        if enrichment_service is None:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Image analysis is disabled",
            )
        photo = await load_photo(request, photo_id)
        if photo.variant(dimension) is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"No {dimension.value} image for this photo",
            )
        result = await enrichment_service.reanalyze(photo, dimension)
        if result is None:
            logger.warning(
                "On-demand analysis failed",
                extra={"photo_id": photo_id, "dimension": dimension.value},
            )
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Image analysis is unavailable",
            )
        return AnalysisResponse(
            dimension=dimension.value,
            model=result.model,
            response=result.response,
            photo=PhotoResponse.from_photo(await load_photo(request, photo_id)),
        )

    async def load_photo_by_slug(request: Request, slug: str) -> Photo:
        state_container: AppContainer = request.app.state.container
        photo = await asyncio.to_thread(
            state_container.photo_service.get_by_slug, slug
        )
        if photo is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail="Photo not found"
            )
        return photo

    @app.get("/photos/slug/{slug}", response_model=PhotoResponse)
    async def get_photo_by_slug_path(slug: str, request: Request) -> PhotoResponse:
        """Return a stored photo by slug, including all-digit slugs."""
        return PhotoResponse.from_photo(await load_photo_by_slug(request, slug))

    @app.get("/photos/{slug}", response_model=PhotoResponse)
    async def get_photo_by_slug(slug: str, request: Request) -> PhotoResponse:
        """Return a stored photo by slug."""
        return PhotoResponse.from_photo(await load_photo_by_slug(request, slug))

    return app
