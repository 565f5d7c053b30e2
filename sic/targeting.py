"""
Size-targeted compression.

The encoder does the actual search (quality and resolution steps). This
module only turns a "stay under N bytes" request into an encoder call and
then holds the encoder to it: anything above the target is thrown away.
"""
from __future__ import annotations

import logging
import math
from numbers import Real
from typing import Callable, Optional

from .engine import compress_image
from .errors import CompressionError, InvalidRequest
from .results import (
    COMPRESSION_ERROR,
    TARGET_NOT_REACHED,
    CompressionFailure,
    CompressionResult,
    CompressionSuccess,
    EncodedImage,
)
from .settings import CompressSettings
from .source import SourceImage


logger = logging.getLogger(__name__)

# Same call shape as engine.compress_image
Primitive = Callable[..., EncodedImage]


def validate_request(source: SourceImage, desired_max_size_bytes: int, max_attempts: int = 1) -> None:
    """
    Raises:
        InvalidRequest: if the request must not be run at all.
    """
    if source is None or source.byte_length == 0:
        raise InvalidRequest("No source image selected.")

    if isinstance(desired_max_size_bytes, bool) or not isinstance(desired_max_size_bytes, Real):
        raise InvalidRequest(f"Desired size must be a number, got {desired_max_size_bytes!r}.")

    if not math.isfinite(desired_max_size_bytes):
        raise InvalidRequest(f"Desired size must be finite, got {desired_max_size_bytes!r}.")

    if desired_max_size_bytes <= 0:
        raise InvalidRequest("Desired size must be greater than 0.")

    if desired_max_size_bytes > source.byte_length:
        raise InvalidRequest(
            f"Desired size ({desired_max_size_bytes} bytes) is larger than the image "
            f"({source.byte_length} bytes)."
        )

    if int(max_attempts) < 1:
        raise InvalidRequest("At least one compression attempt is required.")


class SizeTargetingCompressor:
    def __init__(
        self,
        primitive: Optional[Primitive] = None,
        settings: Optional[CompressSettings] = None,
    ) -> None:
        self.primitive = primitive or compress_image
        self.settings = settings or CompressSettings()

    def compress(
        self,
        source: SourceImage,
        desired_max_size_bytes: int,
        max_attempts: Optional[int] = None,
    ) -> CompressionResult:
        attempts = self.settings.max_iteration if max_attempts is None else int(max_attempts)
        validate_request(source, desired_max_size_bytes, attempts)

        # The encoder speaks megabytes
        max_size_mb = desired_max_size_bytes / 1024 / 1024

        logger.info(
            "compressing %s (%d bytes) to <= %d bytes, %d attempts",
            source.name, source.byte_length, desired_max_size_bytes, attempts,
        )

        try:
            out = self.primitive(
                source.data,
                max_size_mb=max_size_mb,
                max_iteration=attempts,
                settings=self.settings,
            )
        except CompressionError as exc:
            logger.warning("compression of %s failed: %s", source.name, exc)
            return CompressionFailure(reason=COMPRESSION_ERROR, detail=str(exc))
        except Exception as exc:
            # Anything else the encoder throws (broken EXIF, out of memory, ...)
            logger.exception("encoder crashed on %s", source.name)
            return CompressionFailure(reason=COMPRESSION_ERROR, detail=str(exc))

        output_size = len(out.data)
        if output_size > desired_max_size_bytes:
            # Best-effort output is discarded, even though it is smaller than the source.
            logger.info(
                "target not reached for %s: %d > %d bytes after %d rounds",
                source.name, output_size, desired_max_size_bytes, out.iterations,
            )
            return CompressionFailure(
                reason=TARGET_NOT_REACHED,
                detail=f"Smallest result was {output_size} bytes.",
            )

        logger.info("compressed %s to %d bytes", source.name, output_size)
        return CompressionSuccess(
            compressed_bytes=out.data,
            achieved_size_bytes=output_size,
            mime_type=out.mime_type,
            width=out.width,
            height=out.height,
            iterations=out.iterations,
        )


def compress(
    source: SourceImage,
    desired_max_size_bytes: int,
    max_attempts: Optional[int] = None,
    settings: Optional[CompressSettings] = None,
) -> CompressionResult:
    return SizeTargetingCompressor(settings=settings).compress(source, desired_max_size_bytes, max_attempts)
