"""Tests for buffer / file tree / surface synchronization."""

from __future__ import annotations

import asyncio

import pytest

from engine.kernel.sync import MemoryFileTree, SourceSyncManager

PAGE = """<!DOCTYPE html>
<html><head><title>Café “Nord”</title></head>
<body>
  <h1>Menu</h1>\t<p>Espresso — €2</p>
</body></html>
"""


class Recorder:
    def __init__(self) -> None:
        self.documents: list[str] = []
        self.buffers: list[str] = []

    async def on_document(self, content: str) -> None:
        self.documents.append(content)

    def on_buffer(self, content: str) -> None:
        self.buffers.append(content)


@pytest.fixture
def tree() -> MemoryFileTree:
    return MemoryFileTree()


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def tree_writes(tree) -> list[tuple[str, str]]:
    writes: list[tuple[str, str]] = []
    tree.subscribe(lambda path, content: writes.append((path, content)))
    return writes


def make_sync(tree, recorder, debounce_ms: int = 20) -> SourceSyncManager:
    return SourceSyncManager(tree, recorder.on_document, debounce_ms=debounce_ms, on_buffer=recorder.on_buffer)


@pytest.mark.asyncio
async def test_rapid_edits_write_once(tree, recorder, tree_writes) -> None:
    sync = make_sync(tree, recorder)
    for i in range(10):
        sync.set_buffer(f"<p>draft {i}</p>")
    assert tree_writes == []

    await asyncio.sleep(0.08)

    assert tree_writes == [("/index.html", "<p>draft 9</p>")]
    assert recorder.documents == ["<p>draft 9</p>"]
    assert sync.document.revision == 1


@pytest.mark.asyncio
async def test_full_document_round_trips_byte_identical(tree, recorder) -> None:
    sync = make_sync(tree, recorder)
    sync.set_buffer(PAGE)
    await sync.flush()

    assert tree.read("/index.html") == PAGE
    assert recorder.documents == [PAGE]
    assert sync.document.buffer == PAGE
    assert sync.document.kind == "document"


@pytest.mark.asyncio
async def test_component_source_goes_to_app_entry(tree, recorder) -> None:
    source = "export default function App() {\n  return (<main>Hi</main>);\n}\n"
    sync = make_sync(tree, recorder)
    sync.set_buffer(source)
    await sync.flush()

    assert tree.read("/src/App.tsx") == source
    assert tree.read("/index.html") is None
    assert sync.document.entry_path == "/src/App.tsx"
    assert sync.document.kind == "component"


@pytest.mark.asyncio
async def test_external_tree_edit_updates_buffer_once(tree, recorder, tree_writes) -> None:
    sync = make_sync(tree, recorder)
    sync.set_buffer("<p>mine</p>")
    await sync.flush()
    tree_writes.clear()

    tree.write("/index.html", "<p>theirs</p>")

    assert recorder.buffers == ["<p>theirs</p>"]
    assert sync.document.buffer == "<p>theirs</p>"
    await sync.flush()
    assert recorder.documents == ["<p>mine</p>", "<p>theirs</p>"]
    # No write back into the tree
    assert tree_writes == [("/index.html", "<p>theirs</p>")]


@pytest.mark.asyncio
async def test_buffer_echo_from_editor_is_ignored(tree, recorder, tree_writes) -> None:
    sync = SourceSyncManager(tree, recorder.on_document, debounce_ms=20, on_buffer=lambda text: sync.set_buffer(text))

    tree.write("/index.html", "<p>external</p>")
    await sync.flush()

    assert sync.pending is False
    assert tree_writes == [("/index.html", "<p>external</p>")]
    assert recorder.documents == ["<p>external</p>"]


@pytest.mark.asyncio
async def test_other_paths_do_not_touch_buffer(tree, recorder) -> None:
    sync = make_sync(tree, recorder)
    tree.write("/styles.css", "body{}")
    await sync.flush()

    assert sync.document.buffer == ""
    assert recorder.buffers == []
    assert recorder.documents == []


@pytest.mark.asyncio
async def test_identical_buffer_is_not_rewritten(tree, recorder, tree_writes) -> None:
    sync = make_sync(tree, recorder)
    sync.set_buffer("<p>same</p>")
    await sync.flush()
    sync.set_buffer("<p>same</p>")
    await sync.flush()

    assert len(tree_writes) == 1
    assert recorder.documents == ["<p>same</p>"]


@pytest.mark.asyncio
async def test_loads_existing_entry_point() -> None:
    tree = MemoryFileTree({"/src/App.tsx": "export default () => (<p>x</p>);", "/README.md": "hi"})
    sync = SourceSyncManager(tree, lambda content: None)

    assert sync.document.entry_path == "/src/App.tsx"
    assert sync.document.kind == "component"
    assert sync.document.buffer.startswith("export default")


def test_entry_point_lookup_prefers_index() -> None:
    tree = MemoryFileTree({"/src/App.tsx": "a", "/index.html": "b"})
    assert tree.read_entry_point() == ("/index.html", "b")
    assert MemoryFileTree().read_entry_point() is None


def test_unsubscribe_stops_notifications() -> None:
    tree = MemoryFileTree()
    seen: list[str] = []
    unsubscribe = tree.subscribe(lambda path, content: seen.append(path))
    tree.write("/a.html", "1")
    unsubscribe()
    tree.write("/b.html", "2")
    assert seen == ["/a.html"]


@pytest.mark.asyncio
async def test_reset_and_close(tree, recorder) -> None:
    sync = make_sync(tree, recorder)
    sync.set_buffer("<p>x</p>")
    sync.reset()
    await asyncio.sleep(0.05)

    assert recorder.documents == []
    assert sync.document.buffer == ""

    sync.close()
    tree.write("/index.html", "<p>after close</p>")
    assert recorder.buffers == []
