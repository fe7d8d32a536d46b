"""Filesystem access for published and unpublished recordings."""

from __future__ import annotations

import glob
import os
import posixpath
from dataclasses import dataclass, field

ENV_RECORDINGS_PUBLISHED_PATH = "B3SCALE_RECORDINGS_PUBLISHED_PATH"
ENV_RECORDINGS_UNPUBLISHED_PATH = "B3SCALE_RECORDINGS_UNPUBLISHED_PATH"

_RW_TEST_NAME = ".rwtest.b3scale"


class RecordingsStorageUnconfigured(RuntimeError):
    """The recordings paths are missing from the environment."""

    def __init__(self) -> None:
        super().__init__(
            f"environment for {ENV_RECORDINGS_PUBLISHED_PATH} or "
            f"{ENV_RECORDINGS_UNPUBLISHED_PATH} is not set"
        )


@dataclass
class Image:
    """A preview image of a recording."""

    url: str
    alt: str


@dataclass
class Preview:
    """Preview images of a recording."""

    images: list[Image] = field(default_factory=list)


@dataclass
class RecordingsStorage:
    """Locations of published and unpublished recordings."""

    published_path: str
    unpublished_path: str

    @classmethod
    def from_env(cls) -> RecordingsStorage:
        """Configure the storage from the environment."""
        published = os.environ.get(ENV_RECORDINGS_PUBLISHED_PATH)
        unpublished = os.environ.get(ENV_RECORDINGS_UNPUBLISHED_PATH)
        if not published or not unpublished:
            raise RecordingsStorageUnconfigured()
        return cls(published_path=published, unpublished_path=unpublished)

    def published_recording_path(self, record_id: str) -> str:
        return os.path.join(self.published_path, "presentation", record_id)

    def unpublished_recording_path(self, record_id: str) -> str:
        return os.path.join(self.unpublished_path, "presentation", record_id)

    def check(self) -> None:
        """Ensure both locations can be written; raises OSError otherwise."""
        _check_path(self.published_recording_path(_RW_TEST_NAME))
        _check_path(self.unpublished_recording_path(_RW_TEST_NAME))

    def list_thumbnail_files(self, record_id: str) -> list[str]:
        """Thumbnail files of a published recording, relative to its directory."""
        base = self.published_recording_path(record_id)
        pattern = os.path.join(base, "presentation", "*", "thumbnails", "*.png")
        return [os.path.relpath(path, base) for path in sorted(glob.glob(pattern))]

    def make_recording_preview(self, record_id: str) -> Preview:
        """Build a preview from the recording's thumbnails."""
        return Preview(
            images=[
                Image(
                    url=posixpath.join("presentation", record_id, thumbnail),
                    alt=f"Thumbnail {number:02d}",
                )
                for number, thumbnail in enumerate(
                    self.list_thumbnail_files(record_id), start=1
                )
            ]
        )


def _check_path(path: str) -> None:
    fd = os.open(path, os.O_RDWR | os.O_CREAT, 0o600)
    os.close(fd)
    os.remove(path)