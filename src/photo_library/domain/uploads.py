"""Models for parsed multipart upload sections."""

from dataclasses import dataclass


@dataclass(frozen=True)
class UploadSection:
    """A single buffered part of a multipart request body.

    `size` counts every byte received for the part, while `data` stops
    growing once the reader's buffering ceiling is reached.
    """

    disposition: str
    name: str | None
    filename: str | None
    content_type: str | None
    data: bytes
    size: int

    @property
    def is_file(self) -> bool:
        return self.disposition == "form-data" and self.filename is not None

    @property
    def is_field(self) -> bool:
        return self.disposition == "form-data" and self.filename is None

    def text(self) -> str:
        """Decode a field part as UTF-8."""
        return self.data.decode("utf-8", errors="replace")
