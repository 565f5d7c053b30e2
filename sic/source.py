from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from .errors import InvalidRequest


EXT_TO_MIME = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".bmp": "image/bmp",
    ".gif": "image/gif",
}

SUPPORTED_EXTS = set(EXT_TO_MIME)

UNKNOWN_MIME = "application/octet-stream"


@dataclass(frozen=True)
class SourceImage:
    """
    The file the user picked, held entirely in memory.

    Replaced as a whole when a new file is selected; never mutated.
    """
    data: bytes = field(repr=False)
    name: str
    mime_type: str

    def __post_init__(self) -> None:
        if not self.data:
            raise InvalidRequest(f"Source image is empty: {self.name}")

    @property
    def byte_length(self) -> int:
        return len(self.data)

    @property
    def size_kb(self) -> float:
        return self.byte_length / 1024


def mime_for_name(name: str) -> str:
    return EXT_TO_MIME.get(Path(name).suffix.lower(), UNKNOWN_MIME)


def from_bytes(data: bytes, name: str, mime_type: str | None = None) -> SourceImage:
    return SourceImage(data=bytes(data), name=name, mime_type=mime_type or mime_for_name(name))


def load_source(path: str | Path) -> SourceImage:
    """
    Read an image file from disk.

    Raises:
        FileNotFoundError: if the path does not point at a file.
        InvalidRequest: if the file is empty.
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"File not found: {path}")

    return from_bytes(path.read_bytes(), path.name)
