"""
Preview sessions: one render surface and its kernel components.

A PreviewSession wires the render surface controller, intent dispatcher,
page synthesizer and source sync manager together, and implements the host
effects the dispatcher asks for by emitting editor events over the session's
socket. The WebSocket route attaches a sender; the HTML route reads the
current document.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from typing import Any

from backend import config
from backend.services.intent_executor import create_intent_executor
from backend.services.page_generator import create_page_generator
from backend.services.research import HttpResearchClient
from engine.kernel.bundler import bundle, split_pages, suggest_missing_pages
from engine.kernel.dispatcher import IntentDispatcher, IntentExecutor, ResearchClient
from engine.kernel.protocol import ElementPatch, SelectedElement
from engine.kernel.surface import RenderSurfaceController
from engine.kernel.synthesizer import PageGenerator, PageSynthesizer, normalize_page_key
from engine.kernel.sync import MemoryFileTree, SourceSyncManager
from engine.kernel.types import ENTRY_POINTS

logger = logging.getLogger(__name__)

Sender = Callable[[dict[str, Any]], Awaitable[None]]

# Synthesized pages that would land on an entry point are stored here instead
GENERATED_PAGES_DIR = "/pages"


def page_path(name: str) -> str | None:
    """Tree path for a page name or link target; None for non-page targets."""
    name = name.strip()
    if not name or name.startswith(("#", "http:", "https:", "mailto:", "tel:", "//")):
        return None
    name = name.split("?", 1)[0].split("#", 1)[0]
    path = "/" + name.removeprefix("./").lstrip("/")
    if path != "/" and "." not in path.rsplit("/", 1)[-1]:
        path += ".html"
    return path


class PreviewSession:
    """Kernel components for one connected render surface."""

    def __init__(
        self,
        session_id: str,
        generator: PageGenerator,
        executor: IntentExecutor,
        research: ResearchClient | None = None,
        *,
        render_debounce_ms: int = 300,
        sync_debounce_ms: int = 300,
        ack_timeout: float = 1.0,
        style_excerpt_chars: int = 2000,
        max_message_bytes: int = 256 * 1024,
    ):
        self.session_id = session_id
        self._send: Sender | None = None
        self._background: set[asyncio.Task[Any]] = set()
        self._generated: set[str] = set()

        self.tree = MemoryFileTree()
        self.surface = RenderSurfaceController(self, debounce_ms=render_debounce_ms, on_select=self._on_select)
        self.synthesizer = PageSynthesizer(generator, style_excerpt_chars=style_excerpt_chars)
        self.sync = SourceSyncManager(
            self.tree,
            self._on_document,
            debounce_ms=sync_debounce_ms,
            on_buffer=self._on_buffer,
        )
        self.dispatcher = IntentDispatcher(
            self.surface.post,
            executor,
            self.synthesizer,
            self,
            research=research,
            ack_timeout=ack_timeout,
            max_message_bytes=max_message_bytes,
            document=lambda: self.surface.current_document,
            page_source=self.find_page,
            on_select=self.surface.handle_selection,
        )

    # -- transport -------------------------------------------------------------

    def attach(self, send: Sender) -> None:
        self._send = send

    def detach(self) -> None:
        self._send = None

    @property
    def attached(self) -> bool:
        return self._send is not None

    async def send(self, message: dict[str, Any]) -> None:
        """SurfaceTransport: deliver to the attached socket, if any."""
        if self._send is None:
            logger.debug("session %s: no socket, dropped %s", self.session_id, message.get("type"))
            return
        await self._send(message)

    async def _emit(self, event: dict[str, Any]) -> None:
        try:
            await self.send(event)
        except Exception:
            logger.warning("session %s: failed to emit %s", self.session_id, event.get("type"), exc_info=True)

    def _spawn(self, coro: Awaitable[Any]) -> None:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    # -- kernel callbacks ----------------------------------------------------------

    async def _on_document(self, content: str) -> None:
        self.surface.set_files(self.tree.paths)
        await self.surface.render_now(content)

    def _on_buffer(self, content: str) -> None:
        self._spawn(self._emit({"type": "buffer.updated", "content": content}))

    async def _on_select(self, element: SelectedElement) -> None:
        await self._emit({"type": "element.selected", "element": element.to_wire()})

    # -- HostEffects -------------------------------------------------------------------

    async def navigate(self, path: str) -> None:
        content = self.find_page(path)
        if content is not None:
            await self.surface.write_document(bundle(content, files=self.tree.paths).markup)
            return
        await self._emit({"type": "host.navigate", "path": path})

    async def go_back(self) -> None:
        await self._emit({"type": "host.navigate", "path": "back"})

    async def open_external(self, url: str) -> None:
        await self._emit({"type": "host.open_external", "url": url})

    async def open_page(self, page_key: str, content: str) -> None:
        """
        Store a synthesized page (or page set) in the tree and show it.

        Generated pages never overwrite the entry point or files the user
        already has: the main page moves under GENERATED_PAGES_DIR when its
        path is reserved, and colliding sibling pages are skipped.
        """
        path = self.generated_page_path(page_key)
        pages = split_pages(content)
        main = next((p for p in pages if p.is_main), None)
        if len(pages) > 1 and main is not None:
            for page in pages:
                if page is main:
                    continue
                if self._is_reserved(page.path) or self.tree.read(page.path) is not None:
                    logger.info("session %s: kept existing %s, generated copy dropped", self.session_id, page.path)
                    continue
                self.tree.write(page.path, page.content)
            content = main.content
        self.tree.write(path, content)
        await self.surface.write_document(bundle(content).markup)
        await self._emit({"type": "host.page_opened", "pageKey": page_key, "path": path})

    async def notify(self, level: str, message: str) -> None:
        await self._emit({"type": "host.notify", "level": level, "message": message})

    async def show_research(self, query: str, result: dict[str, Any]) -> None:
        await self._emit({"type": "host.research", "query": query, "result": result})

    # -- pages -------------------------------------------------------------------------

    def _is_reserved(self, path: str) -> bool:
        return path == "/" or path == self.sync.document.entry_path or path in ENTRY_POINTS.values()

    def find_page(self, name: str) -> str | None:
        """
        Content the workspace already has for a page link, or None.

        Entry-point paths resolve to the editor buffer, so the user's own
        document is always served for them and never synthesized.
        """
        path = page_path(name)
        if path is None:
            return None
        if self._is_reserved(path):
            return self.sync.document.buffer
        content = self.tree.read(path)
        if content is None:
            content = self.tree.read(f"{GENERATED_PAGES_DIR}/{normalize_page_key(path)}.html")
        return content

    def generated_page_path(self, page_key: str) -> str:
        """Tree path for a synthesized page; never an entry point or a user file."""
        path = f"/{page_key}.html"
        if self._is_reserved(path) or (path not in self._generated and self.tree.read(path) is not None):
            path = f"{GENERATED_PAGES_DIR}/{page_key}.html"
        self._generated.add(path)
        return path

    # -- editor operations -------------------------------------------------------------

    def set_buffer(self, content: str) -> None:
        self.sync.set_buffer(content)

    def write_file(self, path: str, content: str) -> None:
        """Write one file into the virtual tree; non-entry files trigger a re-render."""
        path = "/" + path.lstrip("/")
        self.tree.write(path, content)
        if path != self.sync.document.entry_path:
            self.surface.set_files(self.tree.paths)
            self.surface.schedule_render(self.sync.document.buffer)

    async def update_element(self, selector: str, patch: ElementPatch | dict[str, Any]) -> str:
        return await self.surface.update_element(selector, patch)

    async def set_edit_mode(self, enabled: bool) -> None:
        await self.surface.set_edit_mode(enabled)

    async def clear_workspace(self) -> None:
        """Drop sources, generated pages and the rendered document."""
        self.synthesizer.clear()
        self._generated.clear()
        self.tree.clear()
        self.sync.reset()
        await self.surface.render_now("")

    def page_summary(self) -> dict[str, list[str]]:
        """Files in the tree, synthesized page keys, and linked pages not yet generated."""
        files = self.tree.paths
        return {
            "files": files,
            "generated": self.synthesizer.page_keys,
            "missing": suggest_missing_pages(self.sync.document.buffer, existing=files),
        }

    def handle_surface_message(self, raw: str | bytes | dict[str, Any]) -> None:
        self.dispatcher.dispatch(raw)

    async def close(self) -> None:
        await self.sync.flush()
        self.sync.close()
        self.surface.close()
        await self.dispatcher.close()
        for task in list(self._background):
            task.cancel()
        self.detach()
        logger.info("session %s: closed", self.session_id)


class SessionRegistry:
    """
    In-memory map of session id → PreviewSession.

    Sessions outlive their socket so a reconnect restores the document. A
    detached session is closed after ``idle_ttl`` seconds without a new
    connection, and when more than ``max_sessions`` exist the least recently
    used detached sessions are closed first.
    """

    def __init__(
        self,
        factory: Callable[[str], PreviewSession] | None = None,
        *,
        idle_ttl: float = 900.0,
        max_sessions: int = 256,
    ):
        self._factory = factory or create_session
        self._idle_ttl = idle_ttl
        self._max_sessions = max_sessions
        self._sessions: OrderedDict[str, PreviewSession] = OrderedDict()
        self._expiry: dict[str, asyncio.TimerHandle] = {}
        self._evicting: set[asyncio.Task[None]] = set()

    def get(self, session_id: str) -> PreviewSession | None:
        return self._sessions.get(session_id)

    def get_or_create(self, session_id: str) -> PreviewSession:
        self._cancel_expiry(session_id)
        session = self._sessions.get(session_id)
        if session is None:
            session = self._factory(session_id)
            self._sessions[session_id] = session
            logger.info("session %s: created", session_id)
        self._sessions.move_to_end(session_id)
        return session

    async def acquire(self, session_id: str) -> PreviewSession:
        """get_or_create, then close idle sessions beyond the cap."""
        session = self.get_or_create(session_id)
        await self._enforce_cap(keep=session_id)
        return session

    def release(self, session_id: str) -> None:
        """Detach a session's socket and start its idle timer."""
        session = self._sessions.get(session_id)
        if session is None:
            return
        session.detach()
        self._cancel_expiry(session_id)
        loop = asyncio.get_running_loop()
        self._expiry[session_id] = loop.call_later(self._idle_ttl, self._expire, session_id)

    def _expire(self, session_id: str) -> None:
        self._expiry.pop(session_id, None)
        session = self._sessions.get(session_id)
        if session is None or session.attached:
            return
        logger.info("session %s: idle for %.0fs, closing", session_id, self._idle_ttl)
        task = asyncio.ensure_future(self.remove(session_id))
        self._evicting.add(task)
        task.add_done_callback(self._evicting.discard)

    def _cancel_expiry(self, session_id: str) -> None:
        handle = self._expiry.pop(session_id, None)
        if handle is not None:
            handle.cancel()

    async def _enforce_cap(self, keep: str) -> None:
        excess = len(self._sessions) - self._max_sessions
        if excess <= 0:
            return
        idle = [sid for sid, s in self._sessions.items() if sid != keep and not s.attached]
        for session_id in idle[:excess]:
            logger.info("session %s: evicted, registry over %d sessions", session_id, self._max_sessions)
            await self.remove(session_id)

    async def remove(self, session_id: str) -> None:
        self._cancel_expiry(session_id)
        session = self._sessions.pop(session_id, None)
        if session is not None:
            await session.close()

    async def close_all(self) -> None:
        for session_id in list(self._sessions):
            await self.remove(session_id)

    def __len__(self) -> int:
        return len(self._sessions)


def create_session(session_id: str) -> PreviewSession:
    """Build a session from the application settings."""
    settings = config.settings
    research = HttpResearchClient() if settings.RESEARCH_URL else None
    return PreviewSession(
        session_id,
        generator=create_page_generator(settings),
        executor=create_intent_executor(settings),
        research=research,
        render_debounce_ms=settings.RENDER_DEBOUNCE_MS,
        sync_debounce_ms=settings.SYNC_DEBOUNCE_MS,
        ack_timeout=settings.SCROLL_ACK_TIMEOUT_MS / 1000,
        style_excerpt_chars=settings.STYLE_EXCERPT_CHARS,
        max_message_bytes=settings.MAX_MESSAGE_BYTES,
    )


session_registry = SessionRegistry(
    idle_ttl=config.settings.SESSION_IDLE_TTL_SECONDS,
    max_sessions=config.settings.MAX_SESSIONS,
)
