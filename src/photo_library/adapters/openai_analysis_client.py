"""OpenAI Responses API client for image analysis."""

from dataclasses import dataclass

from openai import AsyncOpenAI

from photo_library.domain.analysis import AnalysisOptions, AnalysisResult
from photo_library.domain.errors import AnalysisError
from photo_library.services.enrichment import AnalysisClient

# Leading base64 characters of each format signature.
_BASE64_SIGNATURES = (
    ("iVBORw0KGgo", "image/png"),
    ("R0lGOD", "image/gif"),
    ("UklGR", "image/webp"),
)


@dataclass
class OpenAIAnalysisClient(AnalysisClient):
    """Analysis client backed by OpenAI Responses API."""

    client: AsyncOpenAI

    @classmethod
    def create(cls, api_key: str) -> "OpenAIAnalysisClient":
        """Create an OpenAI analysis client."""
        return cls(client=AsyncOpenAI(api_key=api_key))

    async def generate(
        self,
        *,
        model: str,
        prompt: str,
        images: list[str],
        options: AnalysisOptions,
    ) -> AnalysisResult:
        """Call OpenAI Responses API with the prompt and thumbnails.

        Sampling options are left to the model defaults.
        """
        content: list[dict[str, str]] = [{"type": "input_text", "text": prompt}]
        content.extend(
            {
                "type": "input_image",
                "image_url": f"data:{_mime_type(image)};base64,{image}",
            }
            for image in images
        )
        response = await self.client.responses.create(
            model=model,
            input=[{"role": "user", "content": content}],
            text={"format": {"type": "json_object"}},
            store=False,
        )
        output_text = response.output_text
        if not output_text:
            raise AnalysisError("OpenAI returned an empty response")
        return AnalysisResult(response=output_text, model=model)

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.client.close()


def _mime_type(encoded: str) -> str:
    for prefix, mime_type in _BASE64_SIGNATURES:
        if encoded.startswith(prefix):
            return mime_type
    return "image/jpeg"
