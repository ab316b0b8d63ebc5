"""Visual surfaces — the UI layer's side of a channel.

The multiplexer never renders anything itself. A SurfaceFactory mounts a
surface for a session id and wires the surface's keystroke and resize
events back to callbacks supplied by the multiplexer. Two implementations
ship here: BufferSurface (headless, keeps everything in memory) and
StreamSurface (writes to a text stream, used by the CLI).
"""

from __future__ import annotations

import shutil
import sys
from collections.abc import Callable
from typing import Protocol, TextIO

from .errors import MountError

InputCallback = Callable[[str], None]
ResizeCallback = Callable[[int, int], None]

DEFAULT_COLS = 120
DEFAULT_ROWS = 40


class Surface(Protocol):
    """One channel's visual surface."""

    def write(self, data: str) -> None: ...

    def set_loading(self, loading: bool) -> None: ...

    def show(self) -> None: ...

    def hide(self) -> None: ...

    def fit(self) -> None: ...

    def focus(self) -> None: ...

    def dispose(self) -> None: ...


class SurfaceFactory(Protocol):
    """Mounts a new surface. Raises MountError when there is nowhere to mount it."""

    def __call__(self, session_id: str, on_input: InputCallback, on_resize: ResizeCallback) -> Surface: ...


class BufferSurface:
    """In-memory surface: accumulates written text and records UI calls."""

    def __init__(self, session_id: str, on_input: InputCallback, on_resize: ResizeCallback) -> None:
        self.session_id = session_id
        self._on_input = on_input
        self._on_resize = on_resize
        self.content = ""
        self.loading = False
        self.visible = False
        self.focused = False
        self.disposed = False
        self.fit_count = 0
        self.cols = DEFAULT_COLS
        self.rows = DEFAULT_ROWS

    def _check_live(self) -> None:
        if self.disposed:
            raise RuntimeError(f"surface {self.session_id} is disposed")

    def write(self, data: str) -> None:
        self._check_live()
        self.content += data

    def set_loading(self, loading: bool) -> None:
        self._check_live()
        self.loading = loading

    def show(self) -> None:
        self._check_live()
        self.visible = True

    def hide(self) -> None:
        self._check_live()
        self.visible = False
        self.focused = False

    def fit(self) -> None:
        self._check_live()
        self.fit_count += 1

    def focus(self) -> None:
        self._check_live()
        self.focused = True

    def dispose(self) -> None:
        self.disposed = True
        self.visible = False
        self.focused = False

    # --- UI-side events ---

    def type(self, data: str) -> None:
        """Simulate the user typing into this surface."""
        self._check_live()
        self._on_input(data)

    def resize(self, cols: int, rows: int) -> None:
        """Simulate the container resizing this surface."""
        self._check_live()
        if (cols, rows) == (self.cols, self.rows):
            return
        self.cols, self.rows = cols, rows
        self._on_resize(cols, rows)


class BufferSurfaceFactory:
    """Creates BufferSurfaces inside a named mount target.

    Keeps every surface it created (disposed ones included) for inspection.
    """

    def __init__(self, mount: str | None = "terminals") -> None:
        self.mount = mount
        self.surfaces: dict[str, BufferSurface] = {}

    def __call__(self, session_id: str, on_input: InputCallback, on_resize: ResizeCallback) -> BufferSurface:
        if self.mount is None:
            raise MountError(f"no container to mount surface for {session_id}")
        surface = BufferSurface(session_id, on_input, on_resize)
        self.surfaces[session_id] = surface
        return surface


class StreamSurface:
    """Writes channel output to a text stream while visible.

    Output that arrives while hidden is held back and flushed on show().
    """

    def __init__(self, session_id: str, on_input: InputCallback, on_resize: ResizeCallback, stream: TextIO) -> None:
        self.session_id = session_id
        self.on_input = on_input
        self.on_resize = on_resize
        self._stream = stream
        self._pending: list[str] = []
        self._visible = False
        self._disposed = False
        self._size: tuple[int, int] | None = None

    def write(self, data: str) -> None:
        if self._disposed:
            return
        if not self._visible:
            self._pending.append(data)
            return
        self._stream.write(data)
        self._stream.flush()

    def set_loading(self, loading: bool) -> None:
        if loading and self._visible:
            self._stream.write(f"[connecting to {self.session_id}...]\r\n")
            self._stream.flush()

    def show(self) -> None:
        self._visible = True
        if self._pending:
            self._stream.write("".join(self._pending))
            self._stream.flush()
            self._pending.clear()

    def hide(self) -> None:
        self._visible = False

    def fit(self) -> None:
        # A stream has no layout; report the controlling terminal size on change
        size = shutil.get_terminal_size((DEFAULT_COLS, DEFAULT_ROWS))
        if (size.columns, size.lines) == self._size:
            return
        self._size = (size.columns, size.lines)
        self.on_resize(size.columns, size.lines)

    def focus(self) -> None:
        pass

    def dispose(self) -> None:
        self._disposed = True
        self._pending.clear()


class StreamSurfaceFactory:
    def __init__(self, stream: TextIO | None = None) -> None:
        self.stream = stream or sys.stdout

    def __call__(self, session_id: str, on_input: InputCallback, on_resize: ResizeCallback) -> StreamSurface:
        return StreamSurface(session_id, on_input, on_resize, self.stream)
