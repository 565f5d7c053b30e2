from __future__ import annotations

import io
import logging
from typing import Optional

from PIL import Image, ImageOps

from .errors import CompressionError
from .results import EncodedImage
from .settings import CompressSettings
from .source import UNKNOWN_MIME


logger = logging.getLogger(__name__)

# Formats we can write back. Anything else Pillow can decode is re-encoded as JPEG.
ENCODABLE_FORMATS = {"jpeg", "png", "webp"}

FORMAT_TO_MIME = {
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
    "bmp": "image/bmp",
    "gif": "image/gif",
}

MIME_TO_FORMAT = {
    "image/jpeg": "jpeg",
    "image/png": "png",
    "image/webp": "webp",
}

# Per-round shrink factors.
SCALE_STEP = 0.95
QUALITY_STEP = 0.95
PNG_QUALITY_STEP = 0.85


def compress_image(
    data: bytes,
    *,
    max_size_mb: float,
    max_iteration: int,
    settings: Optional[CompressSettings] = None,
) -> EncodedImage:
    """
    Re-encode an image, lowering quality and resolution step by step
    until it fits in max_size_mb or max_iteration rounds are used up.

    Returns the last candidate even when it is still too big.

    Raises:
        CompressionError: the data is not a decodable image, or encoding failed.
    """
    s = settings or CompressSettings()
    max_bytes = max_size_mb * 1024 * 1024
    src_bytes = len(data)

    im = _decode(data)
    src_format = (im.format or "").lower()

    # Nothing to change and already small enough -> hand the source back untouched.
    if s.output_type == "keep" and s.max_width_or_height is None and src_bytes <= max_bytes:
        logger.debug("source already fits (%d <= %d bytes), returning as-is", src_bytes, max_bytes)
        return EncodedImage(
            data=bytes(data),
            mime_type=FORMAT_TO_MIME.get(src_format, UNKNOWN_MIME),
            width=im.width,
            height=im.height,
            quality=s.initial_quality,
            iterations=0,
        )

    try:
        return _search(im, src_format, src_bytes, max_bytes, max_iteration, s)
    except (OSError, ValueError, MemoryError) as exc:
        raise CompressionError(f"Cannot encode image: {exc}") from exc


def _search(
    im: Image.Image,
    src_format: str,
    src_bytes: int,
    max_bytes: float,
    max_iteration: int,
    s: CompressSettings,
) -> EncodedImage:
    # Auto-orient first so scaling works on the upright picture
    if s.auto_orient:
        im = ImageOps.exif_transpose(im)

    im = _apply_max_dimension(im, s.max_width_or_height)

    out_format = _choose_output_format(src_format, s)
    im = _prepare_mode(im, out_format, s)

    quality = s.initial_quality
    current = im
    encoded = _encode(current, out_format, quality, s)

    exceeds = len(encoded) > max_bytes
    if not exceeds and len(encoded) <= src_bytes:
        return _encoded(encoded, out_format, current, quality, 0)

    # Only drop pixels when the first pass missed the target
    reduce_resolution = exceeds and not s.always_keep_resolution
    quality_step = PNG_QUALITY_STEP if out_format == "png" else QUALITY_STEP

    scale = 1.0
    iterations = 0
    while iterations < max_iteration and (len(encoded) > max_bytes or len(encoded) > src_bytes):
        iterations += 1

        if reduce_resolution:
            scale *= SCALE_STEP
            current = _scaled(im, scale)

        quality *= quality_step
        encoded = _encode(current, out_format, quality, s)

        logger.debug(
            "round %d: %dx%d q=%.3f -> %d bytes (limit %d)",
            iterations, current.width, current.height, quality, len(encoded), max_bytes,
        )

    return _encoded(encoded, out_format, current, quality, iterations)


def _decode(data: bytes) -> Image.Image:
    try:
        im = Image.open(io.BytesIO(data))
        im.load()
    except (OSError, ValueError, SyntaxError, MemoryError, Image.DecompressionBombError) as exc:
        raise CompressionError(f"Cannot decode image: {exc}") from exc
    return im


def _encoded(data: bytes, out_format: str, im: Image.Image, quality: float, iterations: int) -> EncodedImage:
    return EncodedImage(
        data=data,
        mime_type=FORMAT_TO_MIME[out_format],
        width=im.width,
        height=im.height,
        quality=quality,
        iterations=iterations,
    )


def _choose_output_format(src_format: str, s: CompressSettings) -> str:
    if s.output_type == "keep":
        if src_format in ENCODABLE_FORMATS:
            return src_format
        return "jpeg"
    return MIME_TO_FORMAT[s.output_type]


def _prepare_mode(im: Image.Image, out_format: str, s: CompressSettings) -> Image.Image:
    if out_format == "jpeg":
        if _has_alpha(im):
            return _flatten_alpha(im, s.jpeg_background)
        if im.mode not in ("RGB", "L", "CMYK"):
            return im.convert("RGB")
        return im

    if out_format == "webp":
        if im.mode not in ("RGB", "RGBA"):
            return im.convert("RGBA" if _has_alpha(im) else "RGB")
        return im

    # png
    if im.mode == "CMYK":
        return im.convert("RGB")
    return im


def _pillow_quality(quality: float) -> int:
    return max(1, min(100, int(round(quality * 100))))


def _encode(im: Image.Image, out_format: str, quality: float, s: CompressSettings) -> bytes:
    buf = io.BytesIO()
    # Pillow chooses encoder by format=..., there is no file name here
    im.save(buf, format=out_format.upper(), **_build_save_kwargs(im, s, out_format, quality))
    return buf.getvalue()


def _build_save_kwargs(im: Image.Image, s: CompressSettings, out_format: str, quality: float) -> dict:
    kwargs: dict = {}

    # If strip_metadata is True, we simply don't pass exif / icc_profile.
    if not s.strip_metadata:
        exif = im.info.get("exif")
        if exif is not None and out_format in ("jpeg", "webp", "png"):
            kwargs["exif"] = exif

        icc = im.info.get("icc_profile")
        if icc is not None:
            kwargs["icc_profile"] = icc

    if out_format == "jpeg":
        kwargs["quality"] = _pillow_quality(quality)
        kwargs["optimize"] = True

    elif out_format == "png":
        # PNG is lossless: quality has no effect, only resolution does
        kwargs["compress_level"] = int(s.png_compress_level)

    elif out_format == "webp":
        kwargs["quality"] = _pillow_quality(quality)
        kwargs["method"] = int(s.webp_method)

    return kwargs


def _flatten_alpha(im: Image.Image, background_rgb: tuple[int, int, int]) -> Image.Image:
    # Ensure we are in RGBA so alpha exists
    rgba = im.convert("RGBA")
    bg = Image.new("RGBA", rgba.size, background_rgb + (255,))
    comp = Image.alpha_composite(bg, rgba)
    return comp.convert("RGB")


def _has_alpha(im: Image.Image) -> bool:
    if im.mode in ("RGBA", "LA", "PA"):
        return True
    if im.mode == "P" and "transparency" in im.info:
        return True
    return False


def _scaled(im: Image.Image, scale: float) -> Image.Image:
    new_w = max(1, int(im.width * scale))
    new_h = max(1, int(im.height * scale))
    if (new_w, new_h) == im.size:
        return im
    return im.resize((new_w, new_h), Image.Resampling.LANCZOS)


def _apply_max_dimension(im: Image.Image, max_side: Optional[int]) -> Image.Image:
    """
    Fit the image inside a max_side x max_side box, keeping aspect ratio.
    Never upscales.
    """
    if max_side is None:
        return im

    w, h = im.size
    scale = min(max_side / w, max_side / h)
    if scale >= 1.0:
        return im

    new_w = max(1, int(w * scale))
    new_h = max(1, int(h * scale))
    return im.resize((new_w, new_h), Image.Resampling.LANCZOS)
