"""
Render surface controller.

The only writer to the render surface. Owns the transport to the sandboxed
surface, debounces re-renders after source edits, and carries the host→surface
half of the edit-mode protocol (EDIT_MODE, ELEMENT_UPDATE, ELEMENT_SELECT).
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, Protocol

from pydantic import ValidationError

from engine.kernel.bundler import bundle, inject_capture
from engine.kernel.debounce import Debouncer
from engine.kernel.protocol import (
    DocumentWrite,
    EditMode,
    ElementPatch,
    ElementSelect,
    ElementUpdate,
    SelectedElement,
    WireModel,
)
from engine.kernel.types import BundledDocument

logger = logging.getLogger(__name__)

# Scripts and forms only: no same-origin, no popups, no top navigation
SANDBOX = "allow-scripts allow-forms"
CSP_HEADER = f"sandbox {SANDBOX}"

SelectCallback = Callable[[SelectedElement], Awaitable[None] | None]


class SurfaceTransport(Protocol):
    """Delivers one message into the render surface."""

    async def send(self, message: dict[str, Any]) -> None: ...


class RenderSurfaceController:
    """Bundles source and pushes documents and commands into the surface."""

    def __init__(
        self,
        transport: SurfaceTransport,
        debounce_ms: int = 300,
        on_select: SelectCallback | None = None,
    ):
        self._transport = transport
        self._debouncer = Debouncer(debounce_ms, name="render")
        self._document: BundledDocument | None = None
        self._markup: str | None = None
        self._files: list[str] = []
        self._edit_mode = False
        self.on_select = on_select

    # -- state ---------------------------------------------------------------

    @property
    def current_document(self) -> str:
        """Markup most recently written to the surface (empty state if none)."""
        if self._markup is None:
            return bundle("").markup
        return self._markup

    @property
    def bundled(self) -> BundledDocument | None:
        return self._document

    @property
    def edit_mode(self) -> bool:
        return self._edit_mode

    @property
    def render_pending(self) -> bool:
        return self._debouncer.pending

    def set_files(self, files: Iterable[str]) -> None:
        """Source file names listed on the placeholder when extraction fails."""
        self._files = sorted(files)

    # -- writes ----------------------------------------------------------------

    async def post(self, message: WireModel | dict[str, Any]) -> None:
        """Send one message into the surface. Transport failures are logged."""
        wire = message.to_wire() if isinstance(message, WireModel) else message
        try:
            await self._transport.send(wire)
        except Exception:
            logger.warning("surface: send of %s failed", wire.get("type"), exc_info=True)

    def schedule_render(self, source: str) -> None:
        """Re-bundle and write after the debounce window; restarts on every call."""
        self._debouncer.schedule(lambda: self.render_now(source))

    async def render_now(self, source: str) -> BundledDocument:
        """Bundle and write immediately, cancelling any pending render."""
        self._debouncer.cancel()
        document = bundle(source, files=self._files)
        self._document = document
        await self._write(document.markup)
        logger.debug("surface: rendered %s document (%d chars)", document.kind, len(document.markup))
        return document

    async def write_document(self, markup: str) -> None:
        """Push an already-bundled document into the surface."""
        await self._write(inject_capture(markup))

    async def _write(self, markup: str) -> None:
        self._markup = markup
        await self.post(DocumentWrite(html=markup))

    async def flush(self) -> None:
        """Run a pending debounced render now."""
        await self._debouncer.flush()

    # -- edit mode ---------------------------------------------------------------

    async def set_edit_mode(self, enabled: bool) -> None:
        self._edit_mode = enabled
        await self.post(EditMode(enabled=enabled))

    async def handle_selection(self, message: ElementSelect) -> None:
        """Forward an ELEMENT_SELECT from the surface to the selection callback."""
        if not self._edit_mode:
            logger.debug("surface: selection ignored outside edit mode")
            return
        if self.on_select is None:
            return
        result = self.on_select(message.element)
        if asyncio.iscoroutine(result):
            await result

    async def update_element(self, selector: str, patch: ElementPatch | dict[str, Any]) -> str:
        """
        Apply a style/text/attribute patch to one element in the surface.

        Returns:
            Correlation id carried by the ELEMENT_UPDATE message

        Raises:
            ValueError: If the patch is malformed or empty
        """
        try:
            parsed = patch if isinstance(patch, ElementPatch) else ElementPatch.model_validate(patch)
            request_id = uuid.uuid4().hex
            message = ElementUpdate(selector=selector, patch=parsed, request_id=request_id)
        except ValidationError as e:
            raise ValueError(f"invalid element update: {e.error_count()} error(s)") from e
        if parsed.is_empty():
            raise ValueError("element patch must set styles, text, or attributes")
        await self.post(message)
        return request_id

    def close(self) -> None:
        self._debouncer.cancel()
