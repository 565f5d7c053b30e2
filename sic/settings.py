from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional


# "keep" means re-encode in the source image's own format.
OutputType = Literal["keep", "image/jpeg", "image/png", "image/webp"]


@dataclass(frozen=True)
class CompressSettings:
    """
    All user-configurable knobs for size-targeted compression.

    The target size itself is not stored here: it is chosen per request
    in the UI and handed to the compressor separately.
    """

    # ----- Output handling -----
    output_type: OutputType = "keep"

    # Naming
    download_prefix: str = "compressed_"  # e.g. photo.jpg -> compressed_photo.jpg

    # ----- Targeting -----
    default_desired_kb: float = 20.0
    max_iteration: int = 20  # rounds the encoder may use to reach the target

    # ----- Resize -----
    # Longest side cap, applied before the first encoding. None = no cap.
    max_width_or_height: Optional[int] = None
    # If True, only quality is lowered while searching; pixels are never dropped.
    always_keep_resolution: bool = False

    # ----- Quality search -----
    # 0..1, like a canvas encoder. Multiplied down on every round.
    initial_quality: float = 1.0

    # ----- Metadata -----
    strip_metadata: bool = True
    auto_orient: bool = True

    # ----- PNG encoding -----
    # Pillow uses "compress_level" (0-9). Higher = smaller but slower.
    png_compress_level: int = 9

    # ----- WebP encoding -----
    webp_method: int = 4  # 0-6, higher = smaller but slower

    # ----- JPEG flattening behavior (when source has transparency) -----
    jpeg_background: tuple[int, int, int] = (255, 255, 255)
