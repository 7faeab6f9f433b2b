"""Models for image analysis results."""

from pydantic import BaseModel


class AnalysisResult(BaseModel):
    """Reply of the image analysis collaborator.

    `response` holds free text which is expected to contain a JSON object
    with optional `summary`, `description` and `tags` fields.
    """

    response: str = ""
    done: bool = True
    model: str | None = None
    created_at: str | None = None
    error: str | None = None


class AnalysisOptions(BaseModel):
    """Sampling parameters sent along with the prompt."""

    temperature: float = 0.78
    repeat_penalty: float = 1.24
    seed: int = 20240720
