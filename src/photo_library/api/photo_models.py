"""Response models for the photo API."""

from datetime import datetime

from pydantic import BaseModel

from photo_library.domain.photos import Photo


class VariantResponse(BaseModel):
    dimension: str
    path: str
    filename: str
    filesize: int
    width: int
    height: int


class TagResponse(BaseModel):
    name: str
    description: str | None = None


class PhotoResponse(BaseModel):
    """Public view of a stored photo."""

    id: int | None
    slug: str
    title: str
    summary: str
    description: str
    created_at: datetime
    uploaded_at: datetime
    updated_at: datetime
    uploaded_by: int | None = None
    variants: list[VariantResponse]
    tags: list[TagResponse]

    @classmethod
    def from_photo(cls, photo: Photo) -> "PhotoResponse":
        return cls(
            id=photo.id,
            slug=photo.slug,
            title=photo.title,
            summary=photo.summary,
            description=photo.description,
            created_at=photo.created_at,
            uploaded_at=photo.uploaded_at,
            updated_at=photo.updated_at,
            uploaded_by=photo.uploaded_by,
            variants=[
                VariantResponse(
                    dimension=variant.dimension.value,
                    path=variant.path,
                    filename=variant.filename,
                    filesize=variant.filesize,
                    width=variant.width,
                    height=variant.height,
                )
                for variant in photo.variants
            ],
            tags=[
                TagResponse(name=tag.name, description=tag.description)
                for tag in photo.tags
            ],
        )


class UploadResponse(BaseModel):
    photos: list[PhotoResponse]


class AnalysisResponse(BaseModel):
    """Analysis reply for one tier together with the merged photo."""

    dimension: str
    model: str | None = None
    response: str
    photo: PhotoResponse
