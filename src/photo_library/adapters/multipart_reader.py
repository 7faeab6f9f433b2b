"""Streaming multipart/form-data reader built on python-multipart."""

import logging
from collections import deque
from collections.abc import AsyncIterator
from dataclasses import dataclass, field

from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header

from photo_library.domain.errors import NotMultipart
from photo_library.domain.uploads import UploadSection
from photo_library.services.uploads import SectionReader

_logger = logging.getLogger(__name__)


def parse_boundary(content_type: str | None) -> bytes:
    """Return the multipart boundary, raising `NotMultipart` when absent."""
    if not content_type:
        raise NotMultipart("Request has no content type")
    media_type, params = parse_options_header(content_type)
    if media_type.lower() != b"multipart/form-data":
        raise NotMultipart(f"Expected multipart/form-data, got '{content_type}'")
    boundary = params.get(b"boundary")
    if not boundary:
        raise NotMultipart("Multipart request has no boundary")
    return boundary


@dataclass
class _SectionBuilder:
    """Collects parser callbacks into complete sections."""

    max_part_bytes: int
    completed: deque[UploadSection] = field(default_factory=deque)
    _headers: dict[bytes, bytes] = field(default_factory=dict)
    _header_field: bytearray = field(default_factory=bytearray)
    _header_value: bytearray = field(default_factory=bytearray)
    _data: bytearray = field(default_factory=bytearray)
    _size: int = 0

    def callbacks(self) -> dict[str, object]:
        return {
            "on_part_begin": self.on_part_begin,
            "on_part_data": self.on_part_data,
            "on_part_end": self.on_part_end,
            "on_header_field": self.on_header_field,
            "on_header_value": self.on_header_value,
            "on_header_end": self.on_header_end,
        }

    def on_part_begin(self) -> None:
        self._headers = {}
        self._data = bytearray()
        self._size = 0

    def on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_field.extend(data[start:end])

    def on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value.extend(data[start:end])

    def on_header_end(self) -> None:
        self._headers[bytes(self._header_field).lower()] = bytes(self._header_value)
        self._header_field.clear()
        self._header_value.clear()

    def on_part_data(self, data: bytes, start: int, end: int) -> None:
        self._size += end - start
        remaining = self.max_part_bytes + 1 - len(self._data)
        if remaining > 0:
            self._data.extend(data[start : min(end, start + remaining)])

    def on_part_end(self) -> None:
        disposition, params = parse_options_header(
            self._headers.get(b"content-disposition")
        )
        content_type = self._headers.get(b"content-type")
        self.completed.append(
            UploadSection(
                disposition=disposition.decode("latin-1").lower(),
                name=_decode(params.get(b"name")),
                filename=_decode(params.get(b"filename")),
                content_type=_decode(content_type),
                data=bytes(self._data),
                size=self._size,
            )
        )


def _decode(value: bytes | None) -> str | None:
    if value is None:
        return None
    return value.decode("utf-8", errors="replace")


@dataclass
class MultipartSectionReader(SectionReader):
    """Yields buffered sections as soon as the parser completes them."""

    max_part_bytes: int

    def ensure_multipart(self, content_type: str | None) -> None:
        """Raise `NotMultipart` unless the content type is multipart form data."""
        parse_boundary(content_type)

    async def read_sections(
        self, content_type: str | None, chunks: AsyncIterator[bytes]
    ) -> AsyncIterator[UploadSection]:
        """Parse the body incrementally, yielding sections in order."""
        boundary = parse_boundary(content_type)
        builder = _SectionBuilder(max_part_bytes=self.max_part_bytes)
        parser = MultipartParser(boundary, builder.callbacks())
        try:
            async for chunk in chunks:
                if chunk:
                    parser.write(chunk)
                while builder.completed:
                    yield builder.completed.popleft()
            parser.finalize()
        except MultipartParseError:
            _logger.warning("Malformed multipart body, stopping early", exc_info=True)
        while builder.completed:
            yield builder.completed.popleft()
