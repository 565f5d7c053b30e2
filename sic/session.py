from __future__ import annotations

import logging
import threading
from dataclasses import replace
from pathlib import Path
from typing import Callable, Optional

from . import state as st
from .errors import InvalidRequest
from .export import default_download_name, save_compressed
from .results import COMPRESSION_ERROR, CompressionFailure
from .settings import CompressSettings
from .source import SourceImage, load_source
from .targeting import SizeTargetingCompressor


logger = logging.getLogger(__name__)


class CompressionSession:
    """
    Holds the window's ViewState and runs compressions in the background.

    on_change is called with the new state after every transition. For
    finished compressions it runs on the worker thread, so a GUI must hop
    back to its own thread before touching widgets.
    """

    def __init__(
        self,
        settings: Optional[CompressSettings] = None,
        compressor: Optional[SizeTargetingCompressor] = None,
        on_change: Optional[Callable[[st.ViewState], None]] = None,
    ) -> None:
        self.settings = settings or CompressSettings()
        self.compressor = compressor or SizeTargetingCompressor(settings=self.settings)
        self.on_change = on_change

        self._lock = threading.Lock()
        self._state = st.initial_state(self.settings.default_desired_kb)
        self._worker: threading.Thread | None = None

    @property
    def state(self) -> st.ViewState:
        with self._lock:
            return self._state

    @property
    def busy(self) -> bool:
        return self._state.phase == st.Phase.COMPRESSING

    def configure(self, settings: CompressSettings) -> st.ViewState:
        """Swap in new settings (e.g. from a preset) and adopt their default target size."""
        with self._lock:
            if self.busy:
                raise InvalidRequest("Cannot change settings while compressing.")
            self.settings = settings
            self.compressor = SizeTargetingCompressor(self.compressor.primitive, settings)

            if self._state.source is None:
                self._state = replace(self._state, desired_kb=float(settings.default_desired_kb))
                return self._state

        return self.request_size(settings.default_desired_kb)

    # ---------------- Transitions ----------------
    def select_file(self, path: str | Path) -> st.ViewState:
        """
        Replace the current image with the file at path.

        The previous image is dropped first, so a file that cannot be read
        leaves the window empty rather than showing stale data.
        """
        if self.busy:
            return self.state
        self._apply(st.clear_image)
        return self.select_image(load_source(path))

    def select_image(self, source: SourceImage) -> st.ViewState:
        logger.info("selected %s (%d bytes, %s)", source.name, source.byte_length, source.mime_type)
        return self._apply(lambda s: st.select_image(s, source))

    def request_size(self, desired_kb) -> st.ViewState:
        return self._apply(lambda s: st.request_size(s, desired_kb))

    def compress(self) -> bool:
        """
        Start a compression run in the background.

        Returns False without doing anything if the current state does not
        allow it or a run is already in flight.
        """
        with self._lock:
            if self.busy or not st.can_compress(self._state):
                return False

            self._state = st.begin_compression(self._state)
            snapshot = self._state

            self._worker = threading.Thread(target=self._work, args=(snapshot,), daemon=True)

        # Report COMPRESSING before the worker can report its outcome
        self._notify(snapshot)
        self._worker.start()
        return True

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Join the running worker, if any. Returns True when nothing is running anymore."""
        worker = self._worker
        if worker is not None:
            worker.join(timeout)
            if worker.is_alive():
                return False
        return not self.busy

    def download(
        self,
        directory: str | Path | None = None,
        path: str | Path | None = None,
        overwrite: bool = False,
    ) -> Path:
        current = self.state
        if current.phase != st.Phase.COMPRESSED or current.result is None or current.source is None:
            raise InvalidRequest("There is no compressed image to download.")

        if path is None:
            name = default_download_name(
                current.source.name,
                current.result.mime_type,
                prefix=self.settings.download_prefix,
            )
            path = Path(directory or Path.cwd()) / name

        return save_compressed(current.result.compressed_bytes, Path(path), overwrite=overwrite)

    # ---------------- Internals ----------------
    def _work(self, snapshot: st.ViewState) -> None:
        try:
            # Attempt budget comes from the compressor's own settings
            result = self.compressor.compress(snapshot.source, st.desired_size_bytes(snapshot))
        except Exception as ex:
            # Never leave the window stuck in COMPRESSING
            logger.exception("compression worker crashed")
            result = CompressionFailure(reason=COMPRESSION_ERROR, detail=str(ex))

        self._apply(lambda s: st.finish_compression(s, result))

    def _apply(self, transition: Callable[[st.ViewState], st.ViewState]) -> st.ViewState:
        with self._lock:
            new_state = transition(self._state)
            changed = new_state is not self._state
            self._state = new_state

        if changed:
            self._notify(new_state)
        return new_state

    def _notify(self, new_state: st.ViewState) -> None:
        if self.on_change is not None:
            self.on_change(new_state)
