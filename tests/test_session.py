import threading

import pytest

from conftest import FakePrimitive, encode, gradient_image, kb_source
from sic.errors import InvalidRequest
from sic.presets import apply_preset
from sic.session import CompressionSession
from sic.settings import CompressSettings
from sic.state import Phase
from sic.targeting import SizeTargetingCompressor


class BlockingPrimitive(FakePrimitive):
    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.started = threading.Event()
        self.release = threading.Event()

    def __call__(self, data, **kwargs):
        self.started.set()
        self.release.wait(5)
        return super().__call__(data, **kwargs)


class CrashingPrimitive:
    def __call__(self, data, **kwargs):
        raise RuntimeError("boom")


def _session(primitive, phases=None):
    settings = CompressSettings()
    on_change = (lambda s: phases.append(s.phase)) if phases is not None else None
    return CompressionSession(
        settings=settings,
        compressor=SizeTargetingCompressor(primitive=primitive, settings=settings),
        on_change=on_change,
    )


def test_compress_runs_in_background_and_reports_every_step():
    phases = []
    session = _session(FakePrimitive(output_size=1024), phases)
    session.select_image(kb_source(500))

    assert session.compress()
    assert session.wait(5)

    assert session.state.phase == Phase.COMPRESSED
    assert session.state.result.achieved_size_bytes == 1024
    assert phases == [Phase.IMAGE_SELECTED, Phase.COMPRESSING, Phase.COMPRESSED]


def test_only_one_compression_in_flight():
    fake = BlockingPrimitive(output_size=1024)
    session = _session(fake)
    session.select_image(kb_source(500))

    assert session.compress()
    assert fake.started.wait(5)
    assert session.busy
    assert not session.compress()

    fake.release.set()
    assert session.wait(5)
    assert len(fake.calls) == 1
    assert not session.busy


def test_compress_without_image_is_a_no_op():
    fake = FakePrimitive(output_size=1)
    session = _session(fake)

    assert not session.compress()
    assert fake.calls == []
    assert session.state.phase == Phase.NO_IMAGE


def test_failed_target_leaves_nothing_to_download(tmp_path):
    session = _session(FakePrimitive(output_size=30 * 1024))
    session.select_image(kb_source(500))

    session.compress()
    session.wait(5)

    assert session.state.phase == Phase.COMPRESSION_FAILED
    with pytest.raises(InvalidRequest):
        session.download(directory=tmp_path)
    assert list(tmp_path.iterdir()) == []


def test_crashing_worker_does_not_stick_in_compressing():
    session = _session(CrashingPrimitive())
    session.select_image(kb_source(500))

    session.compress()
    session.wait(5)

    assert session.state.phase == Phase.COMPRESSION_FAILED
    assert "boom" in session.state.message


def test_download_uses_default_name_and_never_overwrites(tmp_path):
    session = _session(FakePrimitive(output_size=2048))
    session.select_image(kb_source(500, name="holiday.jpg"))
    session.compress()
    session.wait(5)

    first = session.download(directory=tmp_path)
    second = session.download(directory=tmp_path)

    assert first.name == "compressed_holiday.jpg"
    assert second.name == "compressed_holiday (1).jpg"
    assert first.read_bytes() == b"\xff" * 2048


def test_new_size_after_success_resets_result():
    session = _session(FakePrimitive(output_size=2048))
    session.select_image(kb_source(500))
    session.compress()
    session.wait(5)

    session.request_size(40)

    assert session.state.phase == Phase.IMAGE_SELECTED
    assert session.state.result is None


def test_select_file_end_to_end(tmp_path):
    p = tmp_path / "sky.jpg"
    p.write_bytes(encode(gradient_image(), "JPEG", quality=100))
    session = CompressionSession()

    session.select_file(p)
    session.request_size(session.state.source.size_kb / 3)
    assert session.compress()
    assert session.wait(30)

    s = session.state
    assert s.phase == Phase.COMPRESSED
    assert s.result.achieved_size_bytes <= s.source.byte_length // 3 + 1


def test_unreadable_file_clears_previous_image(tmp_path):
    session = CompressionSession()
    session.select_image(kb_source(50))

    with pytest.raises(FileNotFoundError):
        session.select_file(tmp_path / "missing.png")

    assert session.state.phase == Phase.NO_IMAGE


def test_preset_changes_default_size_and_encoder_settings():
    fake = FakePrimitive(output_size=1)
    session = _session(fake)
    session.select_image(kb_source(500))

    s = session.configure(apply_preset("50kb", session.settings))

    assert s.desired_kb == 50
    assert session.compressor.settings.max_width_or_height == 1600
    assert session.compressor.primitive is fake


def test_select_file_is_refused_while_compressing(tmp_path):
    p = tmp_path / "other.jpg"
    p.write_bytes(encode(gradient_image((80, 60)), "JPEG"))
    fake = BlockingPrimitive(output_size=1024)
    session = _session(fake)
    session.select_image(kb_source(500, name="first.jpg"))
    session.compress()
    assert fake.started.wait(5)

    s = session.select_file(p)

    assert s.phase == Phase.COMPRESSING
    assert s.source.name == "first.jpg"
    fake.release.set()
    assert session.wait(5)
