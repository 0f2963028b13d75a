"""
Preview kernel test configuration.

Recording fakes for the kernel's collaborators. Kernel tests never touch the
network; debounce and timeout values are passed in short rather than patched.
"""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from engine.kernel.protocol import WireModel
from engine.kernel.types import IntentOutcome, PageSpec


class RecordingTransport:
    """SurfaceTransport that records every message sent into the surface."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []

    async def send(self, message: dict[str, Any]) -> None:
        self.sent.append(message)

    def of_type(self, msg_type: str) -> list[dict[str, Any]]:
        return [m for m in self.sent if m.get("type") == msg_type]


class RecordingPost:
    """Dispatcher post callable that records wire messages."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self.on_send: Any = None

    async def __call__(self, message: WireModel) -> None:
        wire = message.to_wire()
        self.sent.append(wire)
        if self.on_send is not None:
            self.on_send(wire)

    def of_type(self, msg_type: str) -> list[dict[str, Any]]:
        return [m for m in self.sent if m.get("type") == msg_type]


class RecordingEffects:
    """HostEffects that records every call."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple[Any, ...]]] = []

    async def navigate(self, path: str) -> None:
        self.calls.append(("navigate", (path,)))

    async def go_back(self) -> None:
        self.calls.append(("go_back", ()))

    async def open_external(self, url: str) -> None:
        self.calls.append(("open_external", (url,)))

    async def open_page(self, page_key: str, content: str) -> None:
        self.calls.append(("open_page", (page_key, content)))

    async def notify(self, level: str, message: str) -> None:
        self.calls.append(("notify", (level, message)))

    async def show_research(self, query: str, result: dict[str, Any]) -> None:
        self.calls.append(("show_research", (query, result)))

    def named(self, name: str) -> list[tuple[Any, ...]]:
        return [args for call, args in self.calls if call == name]


class StubExecutor:
    """IntentExecutor returning a fixed outcome, or raising."""

    def __init__(self, outcome: IntentOutcome | None = None, error: Exception | None = None) -> None:
        self.outcome = outcome or IntentOutcome(success=True, data={"id": "bk_1"})
        self.error = error
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def execute(self, intent: str, payload: dict[str, Any]) -> IntentOutcome:
        self.calls.append((intent, payload))
        if self.error is not None:
            raise self.error
        return self.outcome


class CountingGenerator:
    """PageGenerator that counts calls and can delay, fail, or return fixed content."""

    def __init__(self, content: str = "<main>generated</main>", delay: float = 0.0, error: Exception | None = None):
        self.content = content
        self.delay = delay
        self.error = error
        self.specs: list[PageSpec] = []

    @property
    def calls(self) -> int:
        return len(self.specs)

    async def generate(self, spec: PageSpec) -> str:
        self.specs.append(spec)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return f"{self.content}<!-- {spec.page_key} -->" if self.content else self.content


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def post() -> RecordingPost:
    return RecordingPost()


@pytest.fixture
def effects() -> RecordingEffects:
    return RecordingEffects()


@pytest.fixture
def executor() -> StubExecutor:
    return StubExecutor()


@pytest.fixture
def generator() -> CountingGenerator:
    return CountingGenerator()
