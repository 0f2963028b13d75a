"""
Source synchronization manager.

Keeps three copies of the current document consistent: the editable buffer,
the entry-point file in the virtual file tree, and the bundled document on
the render surface. Each change propagates exactly once:

  buffer edit  → (debounce) → tree write → on_document
  tree edit    → buffer update → (debounce) → on_document

A programmatic write in one direction sets ``_applying`` so the listener on
the other side ignores the echo. Identical content is never re-written.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from engine.kernel.bundler import detect_kind
from engine.kernel.debounce import Debouncer
from engine.kernel.types import ENTRY_POINTS, SourceDocument

logger = logging.getLogger(__name__)

TreeListener = Callable[[str, str], None]

# Entry-point lookup order when loading an existing tree
ENTRY_POINT_ORDER = ("/index.html", "/src/App.tsx", "/src/App.jsx")


class VirtualFileTree(Protocol):
    """Path → content store with change notifications."""

    def write(self, path: str, content: str) -> None: ...

    def read(self, path: str) -> str | None: ...

    def read_entry_point(self) -> tuple[str, str] | None: ...

    def subscribe(self, callback: TreeListener) -> Callable[[], None]: ...


class MemoryFileTree:
    """In-process VirtualFileTree. Listeners run synchronously on write."""

    def __init__(self, files: dict[str, str] | None = None):
        self._files: dict[str, str] = dict(files or {})
        self._listeners: list[TreeListener] = []

    @property
    def paths(self) -> list[str]:
        return sorted(self._files)

    def read(self, path: str) -> str | None:
        return self._files.get(path)

    def write(self, path: str, content: str) -> None:
        if self._files.get(path) == content:
            return
        self._files[path] = content
        for listener in list(self._listeners):
            listener(path, content)

    def delete(self, path: str) -> None:
        self._files.pop(path, None)

    def clear(self) -> None:
        self._files.clear()

    def read_entry_point(self) -> tuple[str, str] | None:
        for path in ENTRY_POINT_ORDER:
            if path in self._files:
                return path, self._files[path]
        return None

    def subscribe(self, callback: TreeListener) -> Callable[[], None]:
        self._listeners.append(callback)

        def _unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _unsubscribe


class SourceSyncManager:
    """Owns the SourceDocument and propagates edits between its copies."""

    def __init__(
        self,
        tree: VirtualFileTree,
        on_document: Callable[[str], Awaitable[Any] | Any],
        *,
        debounce_ms: int = 300,
        on_buffer: Callable[[str], Any] | None = None,
    ):
        self._tree = tree
        self._on_document = on_document
        self._on_buffer = on_buffer
        self._debouncer = Debouncer(debounce_ms, name="sync")
        self._document = SourceDocument()
        self._last_emitted: str | None = None
        self._applying = False
        self._unsubscribe = tree.subscribe(self._on_tree_change)

        entry = tree.read_entry_point()
        if entry is not None:
            path, content = entry
            self._document.buffer = content
            self._document.kind = detect_kind(content)
            self._document.entry_path = path

    @property
    def document(self) -> SourceDocument:
        return self._document

    @property
    def pending(self) -> bool:
        return self._debouncer.pending

    # -- buffer → tree ---------------------------------------------------------------

    def set_buffer(self, text: str) -> None:
        """Record an editor change; the tree write follows after the debounce."""
        if self._applying:
            return
        if text == self._document.buffer and not self._debouncer.pending:
            return
        self._document.buffer = text
        self._debouncer.schedule(self._propagate_buffer)

    async def _propagate_buffer(self) -> None:
        text = self._document.buffer
        kind = detect_kind(text)
        path = ENTRY_POINTS[kind]
        self._document.kind = kind
        self._document.entry_path = path

        if self._tree.read(path) != text:
            self._applying = True
            try:
                self._tree.write(path, text)
            finally:
                self._applying = False
            self._document.revision += 1
            logger.debug("sync: buffer → %s (rev %d)", path, self._document.revision)

        await self._emit(text)

    # -- tree → buffer ---------------------------------------------------------------

    def _on_tree_change(self, path: str, content: str) -> None:
        if self._applying:
            return
        if path != self._document.entry_path:
            return
        if content == self._document.buffer:
            return

        self._applying = True
        try:
            self._document.buffer = content
            self._document.kind = detect_kind(content)
            self._document.revision += 1
            if self._on_buffer is not None:
                self._on_buffer(content)
        finally:
            self._applying = False
        logger.debug("sync: %s → buffer (rev %d)", path, self._document.revision)

        self._debouncer.schedule(lambda: self._emit(content))

    # -- output ------------------------------------------------------------------------

    async def _emit(self, content: str) -> None:
        if content == self._last_emitted:
            return
        self._last_emitted = content
        result = self._on_document(content)
        if asyncio.iscoroutine(result):
            await result

    async def flush(self) -> None:
        """Run any pending propagation now."""
        await self._debouncer.flush()

    def reset(self) -> None:
        """Forget the current document (workspace cleared)."""
        self._debouncer.cancel()
        self._document = SourceDocument()
        self._last_emitted = None

    def close(self) -> None:
        self._debouncer.cancel()
        self._unsubscribe()
