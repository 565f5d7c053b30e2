import io

import pytest
from PIL import Image

from conftest import encode, gradient_image, noise_image
from sic.engine import compress_image
from sic.errors import CompressionError
from sic.settings import CompressSettings


MB = 1024 * 1024


def _decode(data: bytes) -> Image.Image:
    im = Image.open(io.BytesIO(data))
    im.load()
    return im


def test_corrupt_data_raises_compression_error():
    with pytest.raises(CompressionError):
        compress_image(b"this is not an image" * 100, max_size_mb=1, max_iteration=20)


def test_source_that_already_fits_is_returned_untouched(gradient_jpeg):
    out = compress_image(gradient_jpeg.data, max_size_mb=gradient_jpeg.byte_length / MB, max_iteration=20)

    assert out.data == gradient_jpeg.data
    assert out.iterations == 0
    assert out.mime_type == "image/jpeg"
    assert (out.width, out.height) == (800, 600)


def test_jpeg_is_brought_under_target(gradient_jpeg):
    target = gradient_jpeg.byte_length // 3

    out = compress_image(gradient_jpeg.data, max_size_mb=target / MB, max_iteration=20)

    assert out.size_bytes <= target
    assert out.iterations >= 1
    assert out.mime_type == "image/jpeg"
    im = _decode(out.data)
    assert im.format == "JPEG"
    assert im.size == (out.width, out.height)


def test_png_search_drops_resolution():
    data = encode(noise_image((200, 200)), "PNG")
    target = len(data) // 2

    out = compress_image(data, max_size_mb=target / MB, max_iteration=20)

    assert out.size_bytes <= target
    assert out.mime_type == "image/png"
    assert out.width < 200 and out.height < 200
    assert _decode(out.data).format == "PNG"


def test_unreachable_target_returns_best_effort_after_all_rounds():
    data = encode(noise_image((400, 400)), "PNG")

    out = compress_image(data, max_size_mb=1024 / MB, max_iteration=20)

    assert out.size_bytes > 1024
    assert out.size_bytes < len(data)
    assert out.iterations == 20


def test_alpha_is_flattened_when_writing_jpeg():
    data = encode(Image.new("RGBA", (100, 100), (255, 0, 0, 0)), "PNG")
    s = CompressSettings(output_type="image/jpeg")

    out = compress_image(data, max_size_mb=1, max_iteration=20, settings=s)

    assert out.mime_type == "image/jpeg"
    im = _decode(out.data)
    assert im.mode == "RGB"
    r, g, b = im.getpixel((50, 50))
    assert min(r, g, b) > 240


def test_longest_side_is_capped():
    data = encode(gradient_image((800, 600)), "JPEG", quality=100)
    s = CompressSettings(max_width_or_height=200)

    out = compress_image(data, max_size_mb=10, max_iteration=20, settings=s)

    assert (out.width, out.height) == (200, 150)
    assert _decode(out.data).size == (200, 150)


def test_keep_resolution_only_lowers_quality(gradient_jpeg):
    target = gradient_jpeg.byte_length // 2
    s = CompressSettings(always_keep_resolution=True)

    out = compress_image(gradient_jpeg.data, max_size_mb=target / MB, max_iteration=20, settings=s)

    assert (out.width, out.height) == (800, 600)
    assert out.quality < 1.0


def test_gif_is_re_encoded_as_jpeg():
    data = encode(gradient_image((300, 200)).convert("P"), "GIF")

    out = compress_image(data, max_size_mb=(len(data) // 2) / MB, max_iteration=20)

    assert out.mime_type == "image/jpeg"
    assert _decode(out.data).format == "JPEG"


def test_same_input_gives_same_bytes(gradient_jpeg):
    target = gradient_jpeg.byte_length // 4

    first = compress_image(gradient_jpeg.data, max_size_mb=target / MB, max_iteration=20)
    second = compress_image(gradient_jpeg.data, max_size_mb=target / MB, max_iteration=20)

    assert first.data == second.data
