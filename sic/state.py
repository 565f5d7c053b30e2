"""
View state of the compressor window and the transitions between states.

Every transition is a pure function: it takes a ViewState and returns a
new one. Rendering is left to whoever holds the state.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from .errors import InvalidRequest
from .results import TARGET_NOT_REACHED, CompressionResult, CompressionSuccess
from .source import SourceImage


MIN_DESIRED_KB = 1.0

TARGET_NOT_REACHED_MESSAGE = "Unable to compress to the exact desired size. Try a higher value."


class Phase(Enum):
    NO_IMAGE = "no_image"
    IMAGE_SELECTED = "image_selected"
    COMPRESSING = "compressing"
    COMPRESSED = "compressed"
    COMPRESSION_FAILED = "compression_failed"


@dataclass(frozen=True)
class ViewState:
    phase: Phase = Phase.NO_IMAGE
    source: Optional[SourceImage] = None
    desired_kb: float = 20.0
    result: Optional[CompressionSuccess] = None  # only successes are ever shown
    message: Optional[str] = None


def initial_state(default_kb: float = 20.0) -> ViewState:
    return ViewState(desired_kb=float(default_kb))


def parse_kb(value) -> Optional[float]:
    """Lenient number parsing for the size field; None if it isn't a finite number."""
    if isinstance(value, bool):
        return None
    try:
        kb = float(str(value).strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(kb):
        return None
    return kb


def is_valid_kb(state: ViewState, desired_kb) -> bool:
    kb = parse_kb(desired_kb)
    if kb is None or state.source is None:
        return False
    return MIN_DESIRED_KB <= kb <= state.source.size_kb


def desired_size_bytes(state: ViewState) -> int:
    return int(math.floor(state.desired_kb * 1024))


def can_compress(state: ViewState) -> bool:
    if state.source is None or state.phase == Phase.COMPRESSING:
        return False
    if not is_valid_kb(state, state.desired_kb):
        return False
    return 0 < desired_size_bytes(state) <= state.source.byte_length


def clear_image(state: ViewState) -> ViewState:
    if state.phase == Phase.COMPRESSING:
        return state
    return replace(state, phase=Phase.NO_IMAGE, source=None, result=None, message=None)


def select_image(state: ViewState, source: SourceImage) -> ViewState:
    if state.phase == Phase.COMPRESSING:
        return state
    return replace(state, phase=Phase.IMAGE_SELECTED, source=source, result=None, message=None)


def request_size(state: ViewState, desired_kb) -> ViewState:
    """
    Accept a new target size from the input field.

    Out-of-range or non-numeric input is ignored and the previous value
    stays, like a number field that refuses the keystroke.
    """
    if state.source is None or state.phase == Phase.COMPRESSING:
        return state
    if not is_valid_kb(state, desired_kb):
        return state

    return replace(
        state,
        phase=Phase.IMAGE_SELECTED,
        desired_kb=parse_kb(desired_kb),
        result=None,
        message=None,
    )


def begin_compression(state: ViewState) -> ViewState:
    if not can_compress(state):
        raise InvalidRequest("Compression is not available in the current state.")
    return replace(state, phase=Phase.COMPRESSING, result=None, message=None)


def finish_compression(state: ViewState, result: CompressionResult) -> ViewState:
    if result.ok:
        return replace(state, phase=Phase.COMPRESSED, result=result, message=None)

    if result.reason == TARGET_NOT_REACHED:
        message = TARGET_NOT_REACHED_MESSAGE
    else:
        message = f"Compression failed: {result.detail or result.reason}"

    return replace(state, phase=Phase.COMPRESSION_FAILED, result=None, message=message)
