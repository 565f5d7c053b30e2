import io
import logging
import queue
from typing import Any, Optional
import tkinter as tk
from tkinter import filedialog, messagebox, ttk
from pathlib import Path

from PIL import Image, ImageTk

from . import state as st
from .errors import SicError
from .export import default_download_name
from .presets import PRESET_NAMES, apply_preset
from .session import CompressionSession
from .settings import CompressSettings


APP_VERSION = "1.0.0"

PREVIEW_SIZE = (360, 300)

logger = logging.getLogger(__name__)


def run_app() -> None:
    app = SicGui()
    app.mainloop()


class SicGui(tk.Tk):
    def __init__(self) -> None:
        super().__init__()
        self.title(f"Image Size Compressor v{APP_VERSION}")
        self.geometry("880x640")
        self.minsize(780, 560)

        self.base_settings = CompressSettings()

        # ---------- Variables ----------
        self.preset = tk.StringVar(value="(none)")
        self.desired_kb = tk.StringVar(value=f"{self.base_settings.default_desired_kb:g}")

        # Worker -> Tk thread
        self._q: "queue.Queue[tuple[Any, ...]]" = queue.Queue()

        self.session = CompressionSession(settings=self.base_settings, on_change=self._on_state_change)

        # PhotoImage objects must stay referenced or Tk drops them
        self._original_photo: Optional[ImageTk.PhotoImage] = None
        self._compressed_photo: Optional[ImageTk.PhotoImage] = None
        self._original_source = None

        self._option_widgets: list[tk.Widget] = []

        # ---------- UI ----------
        self._build_ui()
        self.desired_kb.trace_add("write", self._on_size_typed)

        self._render(self.session.state)
        self.after(50, self._poll_queue)

    # ---------------- UI building ----------------
    def _build_ui(self) -> None:
        root = ttk.Frame(self, padding=12)
        root.pack(fill="both", expand=True)

        cards = ttk.Frame(root)
        cards.pack(fill="both", expand=True)

        left = ttk.LabelFrame(cards, text="Upload and Compress Image", padding=10)
        left.pack(side="left", fill="both", expand=True, padx=(0, 6))

        right = ttk.LabelFrame(cards, text="Compressed Image", padding=10)
        right.pack(side="left", fill="both", expand=True, padx=(6, 0))

        self._build_left(left)
        self._build_right(right)

        self.status = tk.Text(root, height=6, wrap="word")
        self.status.pack(fill="x", expand=False, pady=(12, 0))
        self._log("Ready.")

    def _build_left(self, parent: ttk.Frame) -> None:
        row = ttk.Frame(parent)
        row.pack(fill="x", pady=4)

        upload_btn = ttk.Button(row, text="Upload your image...", command=self._on_upload)
        upload_btn.pack(side="left")
        self._option_widgets.append(upload_btn)

        ttk.Label(row, text="Preset:").pack(side="left", padx=(12, 0))
        preset_cb = ttk.Combobox(
            row,
            textvariable=self.preset,
            values=["(none)"] + PRESET_NAMES,
            state="readonly",
            width=16,
        )
        preset_cb.pack(side="left", padx=(6, 0))
        preset_cb.bind("<<ComboboxSelected>>", self._on_preset)
        self._option_widgets.append(preset_cb)

        self.original_preview = ttk.Label(parent, text="No image selected.", anchor="center")
        self.original_preview.pack(fill="both", expand=True, pady=(8, 4))

        self.original_size_label = ttk.Label(parent, text="")
        self.original_size_label.pack(anchor="w")

        ttk.Separator(parent).pack(fill="x", pady=8)

        row = ttk.Frame(parent)
        row.pack(fill="x", pady=4)
        ttk.Label(row, text="Desired Size:", width=12).pack(side="left")

        size_entry = ttk.Entry(row, textvariable=self.desired_kb, width=10)
        size_entry.pack(side="left", padx=(6, 4))
        self._option_widgets.append(size_entry)

        ttk.Label(row, text="KB").pack(side="left")

        self.hint_label = ttk.Label(parent, text="", foreground="gray")
        self.hint_label.pack(anchor="w", pady=(2, 0))

        self.compress_btn = ttk.Button(parent, text="Compress Image", command=self._on_compress, state="disabled")
        self.compress_btn.pack(anchor="w", pady=(10, 0))

    def _build_right(self, parent: ttk.Frame) -> None:
        self.compressed_preview = ttk.Label(parent, text="", anchor="center")
        self.compressed_preview.pack(fill="both", expand=True, pady=(8, 4))

        self.compressed_size_label = ttk.Label(parent, text="")
        self.compressed_size_label.pack(anchor="w")

        self.download_btn = ttk.Button(
            parent,
            text="Download Compressed Image",
            command=self._on_download,
            state="disabled",
        )
        self.download_btn.pack(anchor="w", pady=(10, 0))

    # ---------------- Actions ----------------
    def _on_upload(self) -> None:
        p = filedialog.askopenfilename(
            title="Select an image",
            filetypes=(
                ("Images", "*.jpg *.jpeg *.png *.webp *.bmp *.gif"),
                ("All files", "*.*"),
            ),
        )
        if not p:
            return

        try:
            new_state = self.session.select_file(p)
        except (OSError, SicError) as e:
            messagebox.showerror("Cannot open image", str(e))
            return

        # Refused while a compression is running
        if new_state.phase == st.Phase.COMPRESSING:
            return

        self._log(f"Selected: {Path(p).name}")
        # Re-apply whatever the field holds against the new image
        self.session.request_size(self.desired_kb.get())

    def _on_preset(self, _event=None) -> None:
        name = self.preset.get().strip().lower()
        settings = self.base_settings
        if name and name != "(none)":
            settings = apply_preset(name, self.base_settings)

        try:
            new_state = self.session.configure(settings)
        except SicError as e:
            messagebox.showinfo("Running", str(e))
            return

        self.desired_kb.set(f"{new_state.desired_kb:g}")
        self._log(f"Preset: {name}")

    def _on_size_typed(self, *_args) -> None:
        self.session.request_size(self.desired_kb.get())
        # The field may hold an invalid value the state refused
        self._render(self.session.state)

    def _on_compress(self) -> None:
        current = self.session.state
        if not st.is_valid_kb(current, self.desired_kb.get()):
            return

        if not self.session.compress():
            messagebox.showinfo("Compress", "Compression is not available right now.")
            return

        self._log(f"Compressing to {current.desired_kb:g} KB...")

    def _on_download(self) -> None:
        current = self.session.state
        if current.result is None or current.source is None:
            return

        initial = default_download_name(
            current.source.name,
            current.result.mime_type,
            prefix=self.session.settings.download_prefix,
        )
        p = filedialog.asksaveasfilename(
            title="Save compressed image",
            initialfile=initial,
            defaultextension=Path(initial).suffix,
        )
        if not p:
            return

        try:
            # The save dialog already asked about replacing
            written = self.session.download(path=p, overwrite=True)
        except (OSError, SicError) as e:
            self._log(f"ERROR: {e}")
            messagebox.showerror("Download failed", str(e))
            return

        self._log(f"Saved: {written}")

    # ---------------- State -> widgets ----------------
    def _on_state_change(self, new_state: st.ViewState) -> None:
        # May run on the worker thread: only hand it over
        self._q.put(("state", new_state))

    def _poll_queue(self) -> None:
        try:
            while True:
                item = self._q.get_nowait()
                kind = item[0]

                if kind == "state":
                    _, new_state = item
                    self._render(new_state)
                    self._report(new_state)

        except queue.Empty:
            pass

        self.after(50, self._poll_queue)

    def _report(self, s: st.ViewState) -> None:
        if s.phase == st.Phase.COMPRESSED and s.result is not None:
            self._log(f"Done: {s.result.achieved_size_kb:.2f} KB after {s.result.iterations} round(s).")

        elif s.phase == st.Phase.COMPRESSION_FAILED and s.message:
            self._log(f"FAILED: {s.message}")
            messagebox.showwarning("Compression", s.message)

    def _render(self, s: st.ViewState) -> None:
        busy = s.phase == st.Phase.COMPRESSING
        self._set_options_enabled(not busy)

        # Original card
        if s.source is None:
            self.original_preview.configure(image="", text="No image selected.")
            self._original_photo = None
            self.original_size_label.configure(text="")
            self.hint_label.configure(text="")
        else:
            if self._original_source is not s.source:
                self._original_photo = _thumbnail(s.source.data)
                self._original_source = s.source
            if self._original_photo is not None:
                self.original_preview.configure(image=self._original_photo, text="")
            else:
                self.original_preview.configure(image="", text="(no preview)")

            self.original_size_label.configure(text=f"Original Size: {s.source.size_kb:.2f} KB")

            valid = st.is_valid_kb(s, self.desired_kb.get())
            self.hint_label.configure(
                text=f"Please enter a size between {st.MIN_DESIRED_KB:g} KB and {s.source.size_kb:.2f} KB.",
                foreground="gray" if valid else "red",
            )

        can_run = st.can_compress(s) and st.is_valid_kb(s, self.desired_kb.get())
        self.compress_btn.configure(state="normal" if can_run else "disabled")
        self.compress_btn.configure(text="Compressing..." if busy else "Compress Image")

        # Compressed card
        if s.phase == st.Phase.COMPRESSED and s.result is not None:
            self._compressed_photo = _thumbnail(s.result.compressed_bytes)
            self.compressed_preview.configure(image=self._compressed_photo or "", text="")
            self.compressed_size_label.configure(text=f"Compressed Size: {s.result.achieved_size_kb:.2f} KB")
            self.download_btn.configure(state="normal")
        else:
            self._compressed_photo = None
            self.compressed_preview.configure(image="", text="")
            self.compressed_size_label.configure(text="")
            self.download_btn.configure(state="disabled")

    # ---------------- Helpers ----------------
    def _set_options_enabled(self, enabled: bool) -> None:
        for w in self._option_widgets:
            if not enabled:
                w.configure(state="disabled")
            elif isinstance(w, ttk.Combobox):
                w.configure(state="readonly")
            else:
                w.configure(state="normal")

    def _log(self, msg: str) -> None:
        logger.info(msg)
        self.status.insert("end", msg + "\n")
        self.status.see("end")


def _thumbnail(data: bytes) -> Optional[ImageTk.PhotoImage]:
    try:
        with Image.open(io.BytesIO(data)) as im:
            im.load()
            im.thumbnail(PREVIEW_SIZE)
            return ImageTk.PhotoImage(im)
    except (OSError, ValueError, SyntaxError, Image.DecompressionBombError):
        return None
