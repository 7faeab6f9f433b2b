"""Photo enrichment using an external image analysis model."""

import asyncio
import base64
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import Protocol

from photo_library.domain.analysis import AnalysisOptions, AnalysisResult
from photo_library.domain.errors import PhotoVersionConflict
from photo_library.domain.photos import (
    MAX_SUMMARY_LENGTH,
    MAX_TAG_NAME_LENGTH,
    Dimension,
    Photo,
    Tag,
)
from photo_library.services.photos import PhotoRepository

_logger = logging.getLogger(__name__)

ANALYSIS_PROMPT = (
    "You are a tool used to extract information from images so that a family "
    "can organize, categorize and label the photos stored on their home server. "
    "Prefer a varied blend of relevant details over fixating on one topic. "
    "Reply with a single valid JSON object containing: "
    "'summary' (string, 20-100 characters, a brief indexable summary), "
    "'description' (string, 80-400 characters, a human-readable description of "
    "the image contents) and 'tags' (array of 4-16 single-word strings that "
    "categorize the image). Prefer null over empty values. Stay objective and "
    "safe-for-work, and never make up names of unknown people."
)


class AnalysisClient(Protocol):
    """Interface for image analysis models."""

    async def generate(
        self,
        *,
        model: str,
        prompt: str,
        images: list[str],
        options: AnalysisOptions,
    ) -> AnalysisResult:
        """Analyze base64-encoded images and return the model's reply."""


@dataclass(frozen=True)
class AnalysisFields:
    """Fields extracted from an analysis reply."""

    summary: str | None = None
    description: str | None = None
    tags: tuple[str, ...] | None = None


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class EnrichmentService:
    """Requests an analysis per photo and merges it into the stored photo."""

    client: AnalysisClient
    photo_repository: PhotoRepository
    model: str
    timeout_seconds: float = 120.0
    max_attempts: int = 3
    clock: Callable[[], datetime] = _utcnow

    async def enrich(self, photo: Photo) -> None:
        """Analyze a photo's thumbnail and merge the result, never raising."""
        result = await self.analyze(photo)
        await self.merge(result, photo)

    async def reanalyze(
        self, photo: Photo, dimension: Dimension
    ) -> AnalysisResult | None:
        """Analyze one stored tier of a photo on demand and merge the result."""
        result = await self.analyze(photo, dimension)
        await self.merge(result, photo)
        return result

    async def analyze(
        self, photo: Photo, dimension: Dimension = Dimension.THUMBNAIL
    ) -> AnalysisResult | None:
        """Return the analysis of one tier of a photo, or None on failure."""
        variant = photo.variant(dimension)
        if variant is None:
            return None
        try:
            image_bytes = await asyncio.to_thread(variant.full_path.read_bytes)
        except OSError:
            _logger.exception(
                "Failed to read image for analysis",
                extra={
                    "photo_id": photo.id,
                    "dimension": dimension.value,
                    "path": str(variant.full_path),
                },
            )
            return None

        try:
            async with asyncio.timeout(self.timeout_seconds):
                result = await self.client.generate(
                    model=self.model,
                    prompt=ANALYSIS_PROMPT,
                    images=[base64.b64encode(image_bytes).decode("ascii")],
                    options=AnalysisOptions(),
                )
        except TimeoutError:
            _logger.warning(
                "Photo analysis timed out",
                extra={"photo_id": photo.id, "timeout": self.timeout_seconds},
            )
            return None
        except Exception:
            _logger.exception("Photo analysis failed", extra={"photo_id": photo.id})
            return None

        if result.error:
            _logger.warning(
                "Photo analysis returned an error",
                extra={"photo_id": photo.id, "error": result.error},
            )
            return None
        return result

    async def merge(self, result: AnalysisResult | None, photo: Photo) -> None:
        """Merge an analysis into the latest stored state of a photo."""
        if result is None or not result.response.strip():
            _logger.info("No usable analysis", extra={"slug": photo.slug})
            return
        if photo.id is None:
            _logger.warning("Cannot merge analysis into an unsaved photo")
            return

        try:
            exists = await asyncio.to_thread(
                self.photo_repository.photo_exists, photo.id
            )
        except Exception:
            _logger.exception(
                "Failed to check photo before merging analysis",
                extra={"photo_id": photo.id},
            )
            return
        if not exists:
            _logger.warning(
                "Photo no longer exists, dropping analysis",
                extra={"photo_id": photo.id, "slug": photo.slug},
            )
            return

        fields = parse_analysis(result.response)
        if fields is None:
            _logger.warning(
                "Could not parse analysis response",
                extra={"photo_id": photo.id, "response": result.response[:500]},
            )
            return

        for attempt in range(1, self.max_attempts + 1):
            try:
                current = await asyncio.to_thread(
                    self.photo_repository.get_photo, photo.id
                )
            except Exception:
                _logger.exception(
                    "Failed to reload photo before merging analysis",
                    extra={"photo_id": photo.id},
                )
                return
            if current is None:
                _logger.warning(
                    "Photo was deleted while merging analysis",
                    extra={"photo_id": photo.id},
                )
                return

            merged = apply_analysis(current, fields, self.clock())
            try:
                await asyncio.to_thread(
                    self.photo_repository.update_photo, merged, current.version
                )
            except PhotoVersionConflict:
                _logger.info(
                    "Photo changed during merge, retrying",
                    extra={"photo_id": photo.id, "attempt": attempt},
                )
                continue
            except Exception:
                _logger.exception(
                    "Failed to save analysis of photo", extra={"photo_id": photo.id}
                )
                return
            _logger.info("Photo was analyzed", extra={"photo_id": photo.id})
            return

        _logger.warning(
            "Gave up merging analysis after repeated conflicts",
            extra={"photo_id": photo.id, "attempts": self.max_attempts},
        )


def parse_analysis(response: str) -> AnalysisFields | None:
    """Parse the JSON object held in an analysis response."""
    try:
        payload = json.loads(_strip_code_fence(response))
    except json.JSONDecodeError:
        return None
    if not isinstance(payload, dict):
        return None

    summary = _string_field(payload, "summary")
    description = _string_field(payload, "description")

    tags: tuple[str, ...] | None = None
    raw_tags = payload.get("tags")
    if isinstance(raw_tags, list):
        tags = tuple(tag for tag in raw_tags if isinstance(tag, str))
        if len(tags) != len(raw_tags):
            _logger.warning("Ignored non-string tags in analysis")
    elif raw_tags is not None:
        _logger.warning("Analysis 'tags' is not a list", extra={"value": raw_tags})

    return AnalysisFields(summary=summary, description=description, tags=tags)


def apply_analysis(photo: Photo, fields: AnalysisFields, now: datetime) -> Photo:
    """Return the photo with analysis summary, description and tags merged in.

    Tags are appended as-is, existing tags with the same name are kept.
    """
    summary = _combine(fields.summary, photo.summary)
    if len(summary) > MAX_SUMMARY_LENGTH:
        summary = summary[: MAX_SUMMARY_LENGTH - 2] + ".."

    tags = list(photo.tags)
    for name in fields.tags or ():
        cleaned = name.strip()
        if cleaned and len(cleaned) <= MAX_TAG_NAME_LENGTH:
            tags.append(Tag(name=cleaned))

    return replace(
        photo,
        summary=summary,
        description=_combine(fields.description, photo.description),
        tags=tuple(tags),
        updated_at=now,
    )


def _combine(new: str | None, existing: str) -> str:
    if new is None or not new.strip():
        return existing
    if existing.strip():
        return f"{new} - {existing}"
    return new


def _string_field(payload: dict[str, object], key: str) -> str | None:
    value = payload.get(key)
    if value is None or isinstance(value, str):
        return value
    _logger.warning("Analysis field is not a string", extra={"field": key})
    return None


def _strip_code_fence(response: str) -> str:
    text = response.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text
