import io
import random

import pytest
from PIL import Image

from sic.results import EncodedImage
from sic.source import SourceImage


def encode(im: Image.Image, fmt: str, **kwargs) -> bytes:
    buf = io.BytesIO()
    im.save(buf, format=fmt, **kwargs)
    return buf.getvalue()


def gradient_image(size=(800, 600)) -> Image.Image:
    # Smooth content, compresses the way a photo of the sky would
    r = Image.linear_gradient("L").resize(size)
    g = Image.linear_gradient("L").rotate(90).resize(size)
    b = Image.new("L", size, 140)
    return Image.merge("RGB", (r, g, b))


def noise_image(size=(400, 400), seed=1) -> Image.Image:
    rng = random.Random(seed)
    data = bytes(rng.getrandbits(8) for _ in range(size[0] * size[1] * 3))
    return Image.frombytes("RGB", size, data)


class FakePrimitive:
    """Stands in for engine.compress_image and records how it was called."""

    def __init__(self, output_size=0, mime_type="image/jpeg", exc=None):
        self.output_size = output_size
        self.mime_type = mime_type
        self.exc = exc
        self.calls = []

    def __call__(self, data, *, max_size_mb, max_iteration, settings):
        self.calls.append({"data": data, "max_size_mb": max_size_mb, "max_iteration": max_iteration})
        if self.exc is not None:
            raise self.exc
        return EncodedImage(
            data=b"\xff" * self.output_size,
            mime_type=self.mime_type,
            width=10,
            height=10,
            quality=0.5,
            iterations=3,
        )


@pytest.fixture
def gradient_jpeg() -> SourceImage:
    return SourceImage(data=encode(gradient_image(), "JPEG", quality=100), name="sky.jpg", mime_type="image/jpeg")


@pytest.fixture
def gradient_png() -> SourceImage:
    return SourceImage(data=encode(gradient_image(), "PNG"), name="sky.png", mime_type="image/png")


@pytest.fixture
def noise_png() -> SourceImage:
    return SourceImage(data=encode(noise_image(), "PNG"), name="noise.png", mime_type="image/png")


@pytest.fixture
def corrupt_source() -> SourceImage:
    return SourceImage(data=b"this is not an image" * 100, name="broken.png", mime_type="image/png")


def kb_source(kb: int, name="photo.jpg") -> SourceImage:
    return SourceImage(data=b"\x00" * (kb * 1024), name=name, mime_type="image/jpeg")
