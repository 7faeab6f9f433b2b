"""Tests for storage layout and name collisions."""

from datetime import UTC, datetime
from pathlib import Path

import pytest

from photo_library.domain.errors import StorageUnavailable
from photo_library.domain.photos import Dimension
from photo_library.services import storage
from photo_library.services.storage import (
    StoragePaths,
    resolve_collision,
    resolve_directory,
)


def test_resolve_directory_uses_unpadded_date_parts(tmp_path: Path) -> None:
    date = datetime(2024, 3, 7, tzinfo=UTC)

    directory = resolve_directory(tmp_path, Dimension.THUMBNAIL, date)

    assert directory == tmp_path / "thumbnail" / "2024" / "3" / "7"


def test_storage_paths_create_every_tier(tmp_path: Path) -> None:
    paths = StoragePaths.for_date(tmp_path, datetime(2024, 12, 31, tzinfo=UTC))

    paths.create()

    assert paths.source.is_dir()
    assert paths.medium.is_dir()
    assert paths.thumbnail.is_dir()
    assert paths.directory(Dimension.MEDIUM) == paths.medium


def test_storage_paths_create_reports_unusable_base(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    paths = StoragePaths.for_date(blocker, datetime(2024, 1, 1, tzinfo=UTC))

    with pytest.raises(StorageUnavailable):
        paths.create()


def test_resolve_collision_returns_free_name_unchanged(tmp_path: Path) -> None:
    assert resolve_collision(tmp_path, "cat.jpg") == ("cat.jpg", 0)


def test_resolve_collision_appends_copy_suffixes(tmp_path: Path) -> None:
    (tmp_path / "cat.jpg").write_bytes(b"1")
    assert resolve_collision(tmp_path, "cat.jpg") == ("cat_copy.jpg", 1)

    (tmp_path / "cat_copy.jpg").write_bytes(b"2")
    assert resolve_collision(tmp_path, "cat.jpg") == ("cat_copy_2.jpg", 2)


def test_resolve_collision_gives_up_after_retry_limit(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(storage, "MAX_COLLISION_RETRIES", 2)
    for name in ("cat.jpg", "cat_copy.jpg", "cat_copy_2.jpg"):
        (tmp_path / name).write_bytes(b"x")

    with pytest.raises(StorageUnavailable):
        resolve_collision(tmp_path, "cat.jpg")
