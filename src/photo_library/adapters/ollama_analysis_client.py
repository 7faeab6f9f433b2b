"""Ollama generate API client for image analysis."""

from dataclasses import dataclass

import httpx
from pydantic import ValidationError

from photo_library.domain.analysis import AnalysisOptions, AnalysisResult
from photo_library.domain.errors import AnalysisError
from photo_library.services.enrichment import AnalysisClient


@dataclass
class HttpxOllamaClient(AnalysisClient):
    """HTTPX-backed client for a local Ollama server."""

    base_url: str
    http_client: httpx.AsyncClient

    @classmethod
    def create(cls, base_url: str) -> "HttpxOllamaClient":
        """Create an Ollama client with a managed httpx session."""
        return cls(base_url=base_url.rstrip("/"), http_client=httpx.AsyncClient())

    async def generate(
        self,
        *,
        model: str,
        prompt: str,
        images: list[str],
        options: AnalysisOptions,
    ) -> AnalysisResult:
        """Run a non-streaming generation over base64-encoded images."""
        response = await self.http_client.post(
            f"{self.base_url}/api/generate",
            json={
                "model": model,
                "prompt": prompt,
                "images": images,
                "stream": False,
                "options": options.model_dump(),
            },
            timeout=None,
        )
        response.raise_for_status()
        try:
            result = AnalysisResult.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise AnalysisError(f"Unexpected Ollama response: {exc}") from exc
        if result.error:
            raise AnalysisError(result.error)
        return result

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()
