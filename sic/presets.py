from __future__ import annotations

from dataclasses import replace

from .settings import CompressSettings


PRESET_NAMES = ["20kb", "50kb", "100kb", "200kb", "webp", "keep-resolution"]


def apply_preset(name: str, base: CompressSettings) -> CompressSettings:
    name = name.lower()

    if name == "20kb":
        return replace(base, default_desired_kb=20.0, max_width_or_height=1280)

    if name == "50kb":
        return replace(base, default_desired_kb=50.0, max_width_or_height=1600)

    if name == "100kb":
        return replace(base, default_desired_kb=100.0, max_width_or_height=2000)

    if name == "200kb":
        return replace(base, default_desired_kb=200.0)

    if name == "webp":
        return replace(base, output_type="image/webp", strip_metadata=True)

    if name == "keep-resolution":
        return replace(base, always_keep_resolution=True, max_iteration=30)

    raise ValueError(f"Unknown preset: {name}")
