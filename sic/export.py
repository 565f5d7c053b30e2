from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from .source import EXT_TO_MIME


logger = logging.getLogger(__name__)

MIME_TO_EXT = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/bmp": ".bmp",
    "image/gif": ".gif",
}


def default_download_name(source_name: str, mime_type: str | None = None, prefix: str = "compressed_") -> str:
    """
    photo.png -> compressed_photo.png

    If the encoder switched formats (e.g. a GIF written as JPEG), the
    extension follows the new format.
    """
    name = Path(source_name).name
    if mime_type:
        current = EXT_TO_MIME.get(Path(name).suffix.lower())
        new_ext = MIME_TO_EXT.get(mime_type)
        if new_ext and current != mime_type:
            name = Path(name).stem + new_ext
    return f"{prefix}{name}"


def save_compressed(data: bytes, path: Path, overwrite: bool = False) -> Path:
    """Write bytes to path via a temp file in the same folder. Returns the path written."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    if path.exists() and not overwrite:
        path = _next_available_name(path)

    # Create temp file in target dir so the rename is cheap
    fd, tmp_name = tempfile.mkstemp(prefix="sic_", suffix=path.suffix, dir=str(path.parent))
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        tmp_path.replace(path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise

    logger.info("wrote %d bytes to %s", len(data), path)
    return path


def _next_available_name(path: Path) -> Path:
    # compressed_photo.jpg -> compressed_photo (1).jpg
    base = path.with_suffix("")
    ext = path.suffix
    i = 1
    while True:
        candidate = Path(f"{base} ({i}){ext}")
        if not candidate.exists():
            return candidate
        i += 1
