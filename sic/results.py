from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Union


TARGET_NOT_REACHED = "target not reached"
COMPRESSION_ERROR = "compression error"


@dataclass(frozen=True)
class EncodedImage:
    """
    What the encoder hands back: the last candidate it produced.

    It may still be above the requested size; the caller decides.
    """
    data: bytes = field(repr=False)
    mime_type: str
    width: int
    height: int
    quality: float
    iterations: int

    @property
    def size_bytes(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class CompressionSuccess:
    compressed_bytes: bytes = field(repr=False)
    achieved_size_bytes: int
    mime_type: str
    width: int
    height: int
    iterations: int = 0

    ok = True

    @property
    def achieved_size_kb(self) -> float:
        return self.achieved_size_bytes / 1024


@dataclass(frozen=True)
class CompressionFailure:
    reason: str  # TARGET_NOT_REACHED | COMPRESSION_ERROR
    detail: Optional[str] = None

    ok = False


CompressionResult = Union[CompressionSuccess, CompressionFailure]
