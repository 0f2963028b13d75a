"""Tests for PreviewSession wiring and the session registry."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from backend.services.intent_executor import OfflineIntentExecutor
from backend.services.page_generator import TemplatePageGenerator
from backend.services.preview_session import PreviewSession, SessionRegistry, page_path


class Socket:
    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []

    async def __call__(self, message: dict[str, Any]) -> None:
        self.sent.append(message)

    def of_type(self, msg_type: str) -> list[dict[str, Any]]:
        return [m for m in self.sent if m["type"] == msg_type]


def make_session(session_id: str = "s1", **kwargs) -> PreviewSession:
    kwargs.setdefault("render_debounce_ms", 1000)
    kwargs.setdefault("sync_debounce_ms", 10)
    kwargs.setdefault("ack_timeout", 0.05)
    return PreviewSession(session_id, TemplatePageGenerator(), OfflineIntentExecutor(), **kwargs)


@pytest.fixture
def socket() -> Socket:
    return Socket()


@pytest.mark.asyncio
async def test_buffer_edit_renders(socket) -> None:
    session = make_session()
    session.attach(socket)
    session.set_buffer("<h1>Bakery</h1>")
    await session.sync.flush()

    (write,) = socket.of_type("DOCUMENT_WRITE")
    assert "<h1>Bakery</h1>" in write["html"]
    assert session.tree.read("/index.html") == "<h1>Bakery</h1>"
    await session.close()


@pytest.mark.asyncio
async def test_navigate_to_tree_page_renders_it(socket) -> None:
    session = make_session()
    session.attach(socket)
    session.set_buffer("<h1>Home</h1>")
    await session.sync.flush()
    session.write_file("menu.html", "<h1>Menu</h1>")

    await session.navigate("/menu.html")

    assert "<h1>Menu</h1>" in socket.of_type("DOCUMENT_WRITE")[-1]["html"]
    assert socket.of_type("host.navigate") == []
    await session.close()


@pytest.mark.asyncio
async def test_navigate_elsewhere_asks_host(socket) -> None:
    session = make_session()
    session.attach(socket)
    await session.navigate("#pricing")
    await session.go_back()
    assert socket.of_type("host.navigate") == [
        {"type": "host.navigate", "path": "#pricing"},
        {"type": "host.navigate", "path": "back"},
    ]
    await session.close()


@pytest.mark.asyncio
async def test_open_page_stores_page_set(socket) -> None:
    session = make_session()
    session.attach(socket)
    content = (
        "<!-- PAGE: /index.html -->\n<h1>Checkout</h1>\n"
        '<!-- PAGE: /order-details.html label="Details" -->\n<h1>Details</h1>\n'
    )
    await session.open_page("checkout", content)

    assert session.tree.read("/checkout.html") == "<h1>Checkout</h1>"
    assert session.tree.read("/order-details.html") == "<h1>Details</h1>"
    assert "<h1>Checkout</h1>" in socket.of_type("DOCUMENT_WRITE")[-1]["html"]
    assert socket.of_type("host.page_opened") == [
        {"type": "host.page_opened", "pageKey": "checkout", "path": "/checkout.html"}
    ]
    await session.close()


@pytest.mark.asyncio
async def test_external_tree_edit_reaches_editor_and_surface(socket) -> None:
    session = make_session()
    session.attach(socket)
    session.tree.write("/index.html", "<p>from tree</p>")
    await asyncio.sleep(0)
    await session.sync.flush()
    await session.close()

    assert socket.of_type("buffer.updated") == [{"type": "buffer.updated", "content": "<p>from tree</p>"}]
    assert "<p>from tree</p>" in socket.of_type("DOCUMENT_WRITE")[0]["html"]


@pytest.mark.asyncio
async def test_selection_in_edit_mode_reaches_editor(socket) -> None:
    session = make_session()
    session.attach(socket)
    await session.set_edit_mode(True)
    session.handle_surface_message(
        {"type": "ELEMENT_SELECT", "element": {"tag": "h1", "text": "Hi", "selector": "main > h1"}}
    )
    await session.dispatcher.drain()

    (event,) = socket.of_type("element.selected")
    assert event["element"]["selector"] == "main > h1"
    await session.close()


@pytest.mark.asyncio
async def test_clear_workspace(socket) -> None:
    session = make_session()
    session.attach(socket)
    session.set_buffer("<h1>x</h1>")
    await session.sync.flush()
    await session.open_page("cart", "<h1>Cart</h1>")

    await session.clear_workspace()

    assert session.tree.paths == []
    assert session.synthesizer.page_keys == []
    assert session.sync.document.buffer == ""
    assert "Nothing to preview yet" in socket.of_type("DOCUMENT_WRITE")[-1]["html"]
    await session.close()


@pytest.mark.asyncio
async def test_page_summary() -> None:
    session = make_session()
    session.set_buffer('<a href="/menu.html">Menu</a><a href="/cart.html">Cart</a>')
    await session.sync.flush()
    session.write_file("/menu.html", "<h1>Menu</h1>")

    assert session.page_summary() == {
        "files": ["/index.html", "/menu.html"],
        "generated": [],
        "missing": ["/cart.html"],
    }
    await session.close()


@pytest.mark.asyncio
async def test_detached_session_drops_messages() -> None:
    session = make_session()
    await session.surface.render_now("<p>nobody listening</p>")
    assert "nobody listening" in session.surface.current_document
    await session.close()


@pytest.mark.asyncio
async def test_close_flushes_pending_edit() -> None:
    session = make_session(sync_debounce_ms=10_000)
    session.set_buffer("<p>unsaved</p>")
    await session.close()
    assert session.tree.read("/index.html") == "<p>unsaved</p>"


@pytest.mark.asyncio
async def test_registry() -> None:
    created: list[str] = []

    def factory(session_id: str) -> PreviewSession:
        created.append(session_id)
        return make_session(session_id)

    registry = SessionRegistry(factory)
    first = registry.get_or_create("a")
    assert registry.get_or_create("a") is first
    registry.get_or_create("b")
    assert created == ["a", "b"]
    assert len(registry) == 2

    await registry.remove("a")
    assert registry.get("a") is None
    await registry.close_all()
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_registry_closes_idle_session() -> None:
    registry = SessionRegistry(make_session, idle_ttl=0.01)
    session = await registry.acquire("idle")
    session.attach(Socket())

    registry.release("idle")
    assert not session.attached
    await asyncio.sleep(0.05)

    assert registry.get("idle") is None
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_registry_reconnect_keeps_session() -> None:
    registry = SessionRegistry(make_session, idle_ttl=0.02)
    first = await registry.acquire("back-again")
    registry.release("back-again")

    assert await registry.acquire("back-again") is first
    await asyncio.sleep(0.05)

    assert registry.get("back-again") is first
    await registry.close_all()


@pytest.mark.asyncio
async def test_registry_cap_evicts_least_recent_idle_session() -> None:
    registry = SessionRegistry(make_session, max_sessions=2)
    connected = await registry.acquire("connected")
    connected.attach(Socket())
    await registry.acquire("stale")
    await registry.acquire("fresh")

    assert registry.get("stale") is None
    assert registry.get("connected") is connected
    assert registry.get("fresh") is not None
    assert len(registry) == 2
    await registry.close_all()


# ---------------------------------------------------------------------------
# Existing pages and the entry point
# ---------------------------------------------------------------------------

HOME = "<!DOCTYPE html><html><body><h1>Real Home</h1></body></html>"


async def loaded_session(socket: Socket) -> PreviewSession:
    session = make_session()
    session.attach(socket)
    session.set_buffer(HOME)
    await session.sync.flush()
    return session


@pytest.mark.asyncio
async def test_page_generate_for_home_serves_buffer(socket) -> None:
    session = await loaded_session(socket)
    session.handle_surface_message(
        {"type": "NAV_PAGE_GENERATE", "pageName": "/index.html", "navLabel": "Home", "requestId": "home-1"}
    )
    await session.dispatcher.drain()

    (ready,) = socket.of_type("NAV_PAGE_READY")
    assert "<h1>Real Home</h1>" in ready["pageContent"]
    assert session.synthesizer.page_keys == []
    await session.close()


@pytest.mark.asyncio
async def test_page_generate_for_existing_file_serves_it(socket) -> None:
    session = await loaded_session(socket)
    session.write_file("/menu.html", "<h1>Menu</h1>")
    session.handle_surface_message({"type": "NAV_PAGE_GENERATE", "pageName": "menu", "requestId": "menu-1"})
    await session.dispatcher.drain()

    (ready,) = socket.of_type("NAV_PAGE_READY")
    assert "<h1>Menu</h1>" in ready["pageContent"]
    assert session.synthesizer.page_keys == []
    await session.close()


@pytest.mark.asyncio
async def test_redirect_to_entry_point_keeps_buffer(socket) -> None:
    session = await loaded_session(socket)
    revision = session.sync.document.revision
    session.handle_surface_message({"type": "preview-nav", "path": "/index.html", "label": "Shop Now"})
    await session.dispatcher.drain()
    await asyncio.sleep(0)

    assert session.sync.document.buffer == HOME
    assert session.sync.document.revision == revision
    assert session.tree.read("/index.html") == HOME
    assert socket.of_type("buffer.updated") == []
    assert session.synthesizer.page_keys == []
    assert "<h1>Real Home</h1>" in socket.of_type("DOCUMENT_WRITE")[-1]["html"]
    await session.close()


@pytest.mark.asyncio
async def test_generated_index_page_never_lands_on_entry_point(socket) -> None:
    session = await loaded_session(socket)
    await session.open_page("index", "<h1>SYNTHESIZED</h1>")
    await asyncio.sleep(0)

    assert session.tree.read("/index.html") == HOME
    assert session.tree.read("/pages/index.html") == "<h1>SYNTHESIZED</h1>"
    assert session.sync.document.buffer == HOME
    assert socket.of_type("buffer.updated") == []
    assert socket.of_type("host.page_opened") == [
        {"type": "host.page_opened", "pageKey": "index", "path": "/pages/index.html"}
    ]
    await session.close()


@pytest.mark.asyncio
async def test_generated_page_set_keeps_user_files(socket) -> None:
    session = await loaded_session(socket)
    session.write_file("/about.html", "<h1>Our story</h1>")
    content = (
        "<!-- PAGE: /index.html -->\n<h1>Shop</h1>\n"
        '<!-- PAGE: /about.html label="About" -->\n<h1>Generated about</h1>\n'
        '<!-- PAGE: /faq.html label="FAQ" -->\n<h1>FAQ</h1>\n'
    )
    await session.open_page("shop", content)

    assert session.tree.read("/shop.html") == "<h1>Shop</h1>"
    assert session.tree.read("/about.html") == "<h1>Our story</h1>"
    assert session.tree.read("/faq.html") == "<h1>FAQ</h1>"
    assert session.sync.document.buffer == HOME
    await session.close()


@pytest.mark.asyncio
async def test_generated_page_does_not_replace_user_file(socket) -> None:
    session = await loaded_session(socket)
    session.write_file("/cart.html", "<h1>My cart</h1>")
    await session.open_page("cart", "<h1>Generated cart</h1>")

    assert session.tree.read("/cart.html") == "<h1>My cart</h1>"
    assert session.tree.read("/pages/cart.html") == "<h1>Generated cart</h1>"
    assert session.find_page("/cart.html") == "<h1>My cart</h1>"
    await session.close()


@pytest.mark.parametrize(
    "name,expected",
    [
        ("/menu.html", "/menu.html"),
        ("menu", "/menu.html"),
        ("./menu.html?x=1", "/menu.html"),
        ("/", "/"),
        ("#pricing", None),
        ("https://example.com/a.html", None),
        ("mailto:hi@example.com", None),
    ],
)
def test_page_path(name: str, expected: str | None) -> None:
    assert page_path(name) == expected
