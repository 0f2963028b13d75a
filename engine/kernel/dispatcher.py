"""
Intent dispatcher: routes validated surface messages to their handlers.

Messages from one surface are handled one at a time in arrival order by a
per-dispatcher queue worker. INTENT_COMMAND_RESULT replies bypass the queue
so a handler waiting on a surface acknowledgement can be resumed.

Routing for INTENT_TRIGGER is table driven: every KnownIntent has a
HandlerSpec in HANDLERS (checked at import). Well-formed intents outside the
enum go to the remote executor.

Pages the workspace already has (looked up through ``page_source``) are
served or navigated to; only missing pages reach the synthesizer.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from engine.kernel.bundler import bundle
from engine.kernel.classifier import classify
from engine.kernel.protocol import (
    DEFAULT_MAX_MESSAGE_BYTES,
    ElementSelect,
    IntentCommand,
    IntentCommandResult,
    IntentResult,
    IntentTrigger,
    KnownIntent,
    NavPageError,
    NavPageGenerate,
    NavPageReady,
    PreviewError,
    PreviewNav,
    ResearchOpen,
    WireModel,
    known_intent,
    parse_message,
)
from engine.kernel.synthesizer import PageGenerationError, PageSynthesizer, normalize_page_key
from engine.kernel.types import ElementContext, IntentOutcome, PendingRequest

logger = logging.getLogger(__name__)

Post = Callable[[WireModel], Awaitable[None]]


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


class IntentExecutor(Protocol):
    """Remote intent execution (bookings, leads, checkout…)."""

    async def execute(self, intent: str, payload: dict[str, Any]) -> IntentOutcome: ...


class ResearchClient(Protocol):
    async def lookup(self, query: str) -> dict[str, Any]: ...


class HostEffects(Protocol):
    """Host-side UI effects the dispatcher may trigger."""

    async def navigate(self, path: str) -> None: ...

    async def go_back(self) -> None: ...

    async def open_external(self, url: str) -> None: ...

    async def open_page(self, page_key: str, content: str) -> None: ...

    async def notify(self, level: str, message: str) -> None: ...

    async def show_research(self, query: str, result: dict[str, Any]) -> None: ...


# ---------------------------------------------------------------------------
# Handler registry
# ---------------------------------------------------------------------------


class HandlerKind(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"
    DEMO = "demo"
    SCROLL = "scroll"


@dataclass(frozen=True)
class HandlerSpec:
    kind: HandlerKind
    command: str | None = None


_REMOTE = HandlerSpec(HandlerKind.REMOTE)
_SCROLL = HandlerSpec(HandlerKind.SCROLL, command="booking.scroll")

HANDLERS: dict[KnownIntent, HandlerSpec] = {
    KnownIntent.NAV_GOTO: HandlerSpec(HandlerKind.LOCAL),
    KnownIntent.NAV_BACK: HandlerSpec(HandlerKind.LOCAL),
    KnownIntent.NAV_ANCHOR: HandlerSpec(HandlerKind.LOCAL),
    KnownIntent.BOOKING_SCROLL: _SCROLL,
    KnownIntent.BOOKING_OPEN: _SCROLL,
    KnownIntent.DEMO_REQUEST: HandlerSpec(HandlerKind.DEMO),
    KnownIntent.DEMO_WATCH: HandlerSpec(HandlerKind.DEMO),
    KnownIntent.BOOKING_CREATE: _REMOTE,
    KnownIntent.CALENDAR_BOOK: _REMOTE,
    KnownIntent.CONSULTATION_BOOK: _REMOTE,
    KnownIntent.CONTACT_SUBMIT: _REMOTE,
    KnownIntent.SALES_CONTACT: _REMOTE,
    KnownIntent.NEWSLETTER_SUBSCRIBE: _REMOTE,
    KnownIntent.QUOTE_REQUEST: _REMOTE,
    KnownIntent.LEAD_CAPTURE: _REMOTE,
    KnownIntent.JOIN_WAITLIST: _REMOTE,
    KnownIntent.BETA_APPLY: _REMOTE,
    KnownIntent.FORM_SUBMIT: _REMOTE,
    KnownIntent.AUTH_SIGNIN: _REMOTE,
    KnownIntent.AUTH_SIGNUP: _REMOTE,
    KnownIntent.AUTH_SIGNOUT: _REMOTE,
    KnownIntent.TRIAL_START: _REMOTE,
    KnownIntent.CART_ADD: _REMOTE,
    KnownIntent.CART_VIEW: _REMOTE,
    KnownIntent.CART_CHECKOUT: _REMOTE,
    KnownIntent.CHECKOUT_START: _REMOTE,
    KnownIntent.PAY_CHECKOUT: _REMOTE,
    KnownIntent.WISHLIST_ADD: _REMOTE,
    KnownIntent.ORDER_ONLINE: _REMOTE,
}

_missing = set(KnownIntent) - set(HANDLERS)
if _missing:
    raise RuntimeError(f"No handler registered for intents: {sorted(i.value for i in _missing)}")


def handler_for(intent: str) -> HandlerSpec:
    """Registry lookup; intents outside the enum go remote."""
    known = known_intent(intent)
    return HANDLERS[known] if known is not None else _REMOTE


# Success copy shown in the surface when the executor sends no message
_SUCCESS_MESSAGES: dict[str, str] = {
    "booking": "Your booking request has been received.",
    "calendar": "Your call has been scheduled.",
    "consultation": "Your consultation request has been received.",
    "contact": "Thanks! We'll be in touch soon.",
    "sales": "Thanks! Our team will reach out shortly.",
    "newsletter": "You're subscribed!",
    "quote": "Your quote request has been sent.",
    "lead": "Thanks! We'll be in touch soon.",
    "join": "You're on the list!",
    "cart": "Cart updated.",
}
DEFAULT_SUCCESS_MESSAGE = "Done."
DEFAULT_FAILURE_MESSAGE = "Something went wrong. Please try again."


def normalize_message(intent: str, outcome: IntentOutcome) -> str:
    """User-facing message for an executor outcome."""
    if outcome.message:
        return outcome.message
    if not outcome.success:
        return outcome.error or DEFAULT_FAILURE_MESSAGE
    return _SUCCESS_MESSAGES.get(intent.split(".", 1)[0], DEFAULT_SUCCESS_MESSAGE)


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


class IntentDispatcher:
    """Handles surface→host messages for one render surface."""

    def __init__(
        self,
        post: Post,
        executor: IntentExecutor,
        synthesizer: PageSynthesizer,
        effects: HostEffects,
        *,
        research: ResearchClient | None = None,
        ack_timeout: float = 1.0,
        max_message_bytes: int = DEFAULT_MAX_MESSAGE_BYTES,
        document: Callable[[], str] | None = None,
        page_source: Callable[[str], str | None] | None = None,
        on_select: Callable[[ElementSelect], Awaitable[None]] | None = None,
    ):
        self._post = post
        self._executor = executor
        self._synthesizer = synthesizer
        self._effects = effects
        self._research = research
        self._ack_timeout = ack_timeout
        self._max_message_bytes = max_message_bytes
        self._document = document or (lambda: "")
        # Resolves a page path to content the workspace already has, or None
        self._page_source = page_source or (lambda name: None)
        self._on_select = on_select
        self._pending: dict[str, PendingRequest] = {}
        self._queue: asyncio.Queue[Any] | None = None
        self._worker: asyncio.Task[None] | None = None
        self._closed = False

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    # -- entry points ------------------------------------------------------------

    def dispatch(self, raw: str | bytes | dict[str, Any]) -> None:
        """Validate and enqueue one message; returns immediately."""
        if self._closed:
            return
        message = parse_message(raw, max_bytes=self._max_message_bytes)
        if message is None:
            return
        if isinstance(message, IntentCommandResult):
            self._resolve(message)
            return
        if self._queue is None:
            self._queue = asyncio.Queue()
            self._worker = asyncio.ensure_future(self._run())
        self._queue.put_nowait(message)

    async def handle(self, raw: str | bytes | dict[str, Any]) -> None:
        """Validate and handle one message, returning when it is done."""
        message = parse_message(raw, max_bytes=self._max_message_bytes)
        if message is None:
            return
        if isinstance(message, IntentCommandResult):
            self._resolve(message)
            return
        await self._handle(message)

    async def drain(self) -> None:
        """Wait until every enqueued message has been handled."""
        if self._queue is not None:
            await self._queue.join()

    async def _run(self) -> None:
        assert self._queue is not None
        while True:
            message = await self._queue.get()
            try:
                await self._handle(message)
            except Exception:
                logger.error("dispatch: handler for %s failed", message.type, exc_info=True)
            finally:
                self._queue.task_done()

    async def _handle(self, message: Any) -> None:
        logger.debug("dispatch: handling %s", message.type)
        if isinstance(message, IntentTrigger):
            await self._handle_intent(message)
        elif isinstance(message, PreviewNav):
            await self._handle_nav(message)
        elif isinstance(message, NavPageGenerate):
            await self._handle_page_generate(message)
        elif isinstance(message, ResearchOpen):
            await self._handle_research(message)
        elif isinstance(message, ElementSelect):
            if self._on_select is not None:
                await self._on_select(message)
        elif isinstance(message, PreviewError):
            logger.warning("dispatch: surface error: %s (line %s)", message.message, message.line)
            await self._notify("error", f"Preview error: {message.message}")

    # -- INTENT_TRIGGER --------------------------------------------------------------

    async def _handle_intent(self, message: IntentTrigger) -> None:
        intent, payload = message.intent, message.payload
        spec = handler_for(intent)
        logger.info("dispatch: intent %s → %s", intent, spec.kind.value)

        if spec.kind is HandlerKind.SCROLL:
            handled = await self.request_command(spec.command or "booking.scroll")
            text = "Scrolled to the booking form." if handled else "Opening booking."
            await self._reply(message, IntentOutcome(success=True, message=text))
            return

        if spec.kind is HandlerKind.DEMO:
            await self._reply(message, await self._open_demo(payload))
            return

        if spec.kind is HandlerKind.LOCAL:
            await self._reply(message, await self._local_nav(intent, payload))
            return

        try:
            outcome = await self._executor.execute(intent, payload)
        except Exception as e:
            logger.warning("dispatch: executor failed for %s", intent, exc_info=True)
            outcome = IntentOutcome(success=False, error=str(e) or DEFAULT_FAILURE_MESSAGE)

        await self._reply(message, outcome)
        if not outcome.success:
            await self._notify("error", normalize_message(intent, outcome))

    async def _reply(self, message: IntentTrigger, outcome: IntentOutcome) -> None:
        await self._post(
            IntentResult(
                request_id=message.request_id,
                success=outcome.success,
                message=normalize_message(message.intent, outcome),
                data=outcome.data if outcome.success else None,
                error=None if outcome.success else (outcome.error or DEFAULT_FAILURE_MESSAGE),
            )
        )

    async def _open_demo(self, payload: dict[str, Any]) -> IntentOutcome:
        url = payload.get("demoUrl") or payload.get("supademoUrl")
        if not isinstance(url, str) or not url.startswith(("https://", "http://")):
            await self._notify("info", "Demo link is not configured for this page.")
            return IntentOutcome(success=True, message="Demo requested.")
        try:
            await self._effects.open_external(url)
        except Exception as e:
            logger.warning("dispatch: could not open demo %s", url, exc_info=True)
            return IntentOutcome(success=False, error=str(e) or DEFAULT_FAILURE_MESSAGE)
        return IntentOutcome(success=True, message="Opening demo.")

    async def _local_nav(self, intent: str, payload: dict[str, Any]) -> IntentOutcome:
        try:
            if intent == KnownIntent.NAV_BACK.value:
                await self._effects.go_back()
            elif intent == KnownIntent.NAV_ANCHOR.value:
                anchor = str(payload.get("anchor") or payload.get("path") or "").lstrip("#")
                await self._effects.navigate(f"#{anchor}")
            else:
                await self._effects.navigate(str(payload.get("path") or payload.get("href") or "/"))
        except Exception as e:
            logger.warning("dispatch: navigation failed for %s", intent, exc_info=True)
            return IntentOutcome(success=False, error=str(e) or DEFAULT_FAILURE_MESSAGE)
        return IntentOutcome(success=True)

    # -- INTENT_COMMAND round trip -------------------------------------------------------

    async def request_command(self, command: str) -> bool:
        """
        Send an INTENT_COMMAND and wait for its acknowledgement.

        Returns:
            The surface's ``handled`` flag, or False if no reply arrived within
            the ack timeout
        """
        loop = asyncio.get_running_loop()
        request_id = uuid.uuid4().hex
        while request_id in self._pending:
            request_id = uuid.uuid4().hex

        future: asyncio.Future[bool | None] = loop.create_future()
        pending = PendingRequest(
            correlation_id=request_id,
            command=command,
            issued_at=time.monotonic(),
            future=future,
        )
        pending.timeout_handle = loop.call_later(self._ack_timeout, self._expire, request_id)
        self._pending[request_id] = pending

        await self._post(IntentCommand(command=command, request_id=request_id))
        try:
            result = await future
        except asyncio.CancelledError:
            self._discard(request_id)
            raise
        if result is None:
            logger.info("dispatch: %s not acknowledged within %.2fs", command, self._ack_timeout)
            return False
        return result

    def _resolve(self, message: IntentCommandResult) -> None:
        pending = self._pending.pop(message.request_id, None)
        if pending is None:
            logger.debug("dispatch: discarding reply for unknown request %s", message.request_id)
            return
        if pending.timeout_handle is not None:
            pending.timeout_handle.cancel()
        if not pending.future.done():
            pending.future.set_result(message.handled)

    def _expire(self, request_id: str) -> None:
        pending = self._pending.pop(request_id, None)
        if pending is not None and not pending.future.done():
            pending.future.set_result(None)

    def _discard(self, request_id: str) -> None:
        pending = self._pending.pop(request_id, None)
        if pending is not None and pending.timeout_handle is not None:
            pending.timeout_handle.cancel()

    # -- navigation & synthesis -------------------------------------------------------

    async def _handle_nav(self, message: PreviewNav) -> None:
        context = ElementContext.from_dict(message.context)
        if context.href is None and message.path:
            context.href = message.path
        result = classify(message.label or message.path, context)
        logger.debug("dispatch: nav %r → %s (%s)", message.label, result.category, result.reason)

        if result.category == "ignore":
            return

        if result.category == "redirect":
            if message.path and self._page_source(message.path) is not None:
                await self._effects.navigate(message.path)
                return
            key = _page_key_for(message.path, message.label)
            try:
                content = await self._synthesizer.ensure_page(
                    key,
                    {
                        "nav_label": message.label,
                        "document": self._document(),
                        "page_type": result.suggested_page_type,
                    },
                )
            except PageGenerationError as e:
                await self._notify("error", str(e))
                return
            await self._effects.open_page(normalize_page_key(key), content)
            return

        if message.path:
            await self._effects.navigate(message.path)

    async def _handle_page_generate(self, message: NavPageGenerate) -> None:
        existing = self._page_source(message.page_name)
        if existing is not None:
            logger.debug("dispatch: %s already exists, not synthesizing", message.page_name)
            await self._post(
                NavPageReady(
                    request_id=message.request_id,
                    page_name=message.page_name,
                    page_content=bundle(existing).markup,
                )
            )
            return

        context = {
            "nav_label": message.nav_label,
            "document": self._document(),
            "page_type": message.page_context.get("pageType"),
        }
        try:
            content = await self._synthesizer.ensure_page(message.page_name, context)
        except PageGenerationError as e:
            await self._post(NavPageError(request_id=message.request_id, page_name=message.page_name, error=str(e)))
            await self._notify("error", str(e))
            return
        await self._post(
            NavPageReady(
                request_id=message.request_id,
                page_name=message.page_name,
                page_content=bundle(content).markup,
            )
        )

    # -- research ---------------------------------------------------------------------

    async def _handle_research(self, message: ResearchOpen) -> None:
        query = message.payload.query
        if self._research is None:
            await self._notify("info", "Research is not available.")
            return
        try:
            result = await self._research.lookup(query)
        except Exception:
            logger.warning("dispatch: research lookup failed for %r", query, exc_info=True)
            await self._notify("error", "Research lookup failed.")
            return
        await self._effects.show_research(query, result)

    # -- helpers ---------------------------------------------------------------------

    async def _notify(self, level: str, text: str) -> None:
        try:
            await self._effects.notify(level, text)
        except Exception:
            logger.warning("dispatch: notify failed", exc_info=True)

    async def close(self) -> None:
        """Stop the worker and cancel every outstanding request."""
        self._closed = True
        for request_id in list(self._pending):
            pending = self._pending.pop(request_id)
            if pending.timeout_handle is not None:
                pending.timeout_handle.cancel()
            if not pending.future.done():
                pending.future.cancel()
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None


def _page_key_for(path: str, label: str) -> str:
    internal = path and not path.startswith(("http", "mailto:", "tel:", "#")) and path.strip("/")
    return path if internal else (label or path)
