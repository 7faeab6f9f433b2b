"""Tests for the streaming multipart reader."""

import asyncio

import pytest

from photo_library.adapters.multipart_reader import (
    MultipartSectionReader,
    parse_boundary,
)
from photo_library.domain.errors import NotMultipart
from photo_library.domain.uploads import UploadSection
from tests.conftest import (
    Part,
    build_multipart,
    multipart_content_type,
    stream_chunks,
)


def _read_all(
    reader: MultipartSectionReader, body: bytes, chunk_size: int = 7
) -> list[UploadSection]:
    async def collect() -> list[UploadSection]:
        return [
            section
            async for section in reader.read_sections(
                multipart_content_type(), stream_chunks(body, chunk_size)
            )
        ]

    return asyncio.run(collect())


def test_parse_boundary_reads_boundary_parameter() -> None:
    assert parse_boundary('multipart/form-data; boundary="abc"') == b"abc"


@pytest.mark.parametrize(
    "content_type",
    [
        None,
        "",
        "application/json",
        "multipart/form-data",
        "multipart/mixed; boundary=x",
    ],
)
def test_parse_boundary_rejects_non_multipart(content_type: str | None) -> None:
    with pytest.raises(NotMultipart):
        parse_boundary(content_type)


def test_read_sections_yields_fields_and_files_in_order() -> None:
    body = build_multipart(
        [
            Part(name="title", data="Été".encode()),
            Part(
                name="file",
                filename="a.jpg",
                data=b"\xff\xd8\xff" + b"\x00" * 50,
                content_type="image/jpeg",
            ),
            Part(name="tags", data=b"one, two"),
        ]
    )

    sections = _read_all(MultipartSectionReader(max_part_bytes=1024), body)

    assert [section.name for section in sections] == ["title", "file", "tags"]
    assert sections[0].is_field
    assert sections[0].text() == "Été"
    assert sections[1].is_file
    assert sections[1].filename == "a.jpg"
    assert sections[1].content_type == "image/jpeg"
    assert sections[1].size == 53
    assert sections[1].data.startswith(b"\xff\xd8\xff")


def test_read_sections_caps_buffered_bytes_but_counts_size() -> None:
    body = build_multipart([Part(name="file", filename="big.jpg", data=b"x" * 500)])

    (section,) = _read_all(MultipartSectionReader(max_part_bytes=100), body, 64)

    assert section.size == 500
    assert len(section.data) == 101


def test_read_sections_stops_on_malformed_body() -> None:
    body = b"garbage without any boundary"

    assert _read_all(MultipartSectionReader(max_part_bytes=100), body) == []
