"""
Preview Kernel — Shared Types

Data classes used across the classifier, bundler, surface controller,
dispatcher, synthesizer, and sync manager. These are the contracts that bind
the kernel together.

Wire-level message models live in engine.kernel.protocol; everything here is
host-side state that never crosses the trust boundary as-is.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

LabelCategory = Literal["nav", "redirect", "form", "external", "ignore"]

LABEL_CATEGORIES: set[str] = {"nav", "redirect", "form", "external", "ignore"}

# Page types the classifier may suggest for redirect-worthy labels
PAGE_TYPES: set[str] = {
    "products",
    "checkout",
    "cart",
    "details",
    "article",
    "gallery",
    "about",
    "signup",
    "login",
    "pricing",
}


@dataclass
class ElementContext:
    """
    Structural context of a clicked element, derived per click.

    Built by the capture script inside the surface and re-validated on the
    host. Never persisted.
    """

    tag: str | None = None
    parent_tag: str | None = None
    is_in_nav: bool = False
    is_in_footer: bool = False
    declared_intent: str | None = None
    no_intent: bool = False
    href: str | None = None

    @classmethod
    def from_dict(cls, d: dict[str, Any] | None) -> ElementContext:
        d = d or {}

        def _str(key: str) -> str | None:
            value = d.get(key)
            return value if isinstance(value, str) and value else None

        return cls(
            tag=_str("tag"),
            parent_tag=_str("parentTag"),
            is_in_nav=d.get("isInNav") is True,
            is_in_footer=d.get("isInFooter") is True,
            declared_intent=_str("intent"),
            no_intent=d.get("noIntent") is True,
            href=_str("href"),
        )


@dataclass
class ClassificationResult:
    """Result of classifying a clicked label."""

    category: LabelCategory
    confidence: float
    reason: str
    suggested_page_type: str | None = None


# ---------------------------------------------------------------------------
# Bundling
# ---------------------------------------------------------------------------

SourceKind = Literal["document", "fragment", "component", "empty"]

# Conventional entry points in the virtual file tree, per content kind
ENTRY_POINTS: dict[str, str] = {
    "document": "/index.html",
    "fragment": "/index.html",
    "component": "/src/App.tsx",
    "empty": "/index.html",
}

# Marker carried by the injected block; presence means "already bundled"
CAPTURE_SENTINEL = 'data-preview-capture="v1"'


@dataclass
class BundledDocument:
    """A self-contained document ready for the render surface."""

    markup: str
    style: str = ""
    script: str = ""
    kind: SourceKind = "fragment"
    extracted: bool = True


@dataclass
class PageFile:
    """One page split out of multi-page generator output."""

    path: str
    file_name: str
    content: str
    label: str
    is_main: bool = False


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


@dataclass
class PendingRequest:
    """
    An outstanding host→surface request awaiting a correlated reply.

    Lives only inside the dispatcher for one round-trip.
    """

    correlation_id: str
    command: str
    issued_at: float
    future: asyncio.Future[Any]
    timeout_handle: asyncio.TimerHandle | None = None


@dataclass
class IntentOutcome:
    """What the remote intent executor returns."""

    success: bool
    data: dict[str, Any] | None = None
    error: str | None = None
    message: str | None = None


# ---------------------------------------------------------------------------
# Synthesis
# ---------------------------------------------------------------------------

PageRole = Literal["checkout", "cart", "contact", "booking", "products", "generic"]


@dataclass
class PageSpec:
    """Generation request for a page that does not exist yet."""

    page_key: str
    role: PageRole
    nav_label: str = ""
    style_excerpt: str = ""
    source_intent: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "page_key": self.page_key,
            "role": self.role,
            "nav_label": self.nav_label,
            "style_excerpt": self.style_excerpt,
            "source_intent": self.source_intent,
        }


@dataclass
class GeneratedPageCacheEntry:
    """A synthesized page, cached for the session."""

    page_key: str
    content: str
    generated_at: str = field(default_factory=lambda: now_iso())


# ---------------------------------------------------------------------------
# Sync
# ---------------------------------------------------------------------------


@dataclass
class SourceDocument:
    """
    The single logical "current document".

    Owned by the sync manager. The buffer is the editable representation;
    entry_path names its slot in the virtual file tree.
    """

    buffer: str = ""
    kind: SourceKind = "empty"
    entry_path: str = ENTRY_POINTS["empty"]
    revision: int = 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def now_iso() -> str:
    """Current UTC time as ISO 8601 string."""
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")
