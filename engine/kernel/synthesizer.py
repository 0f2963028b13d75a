"""
Dynamic page synthesizer.

Generates pages that do not exist yet (checkout, cart, product listings…)
when a redirect-worthy label is clicked, styled to match the current
document. Each page key is generated at most once per session: concurrent
requests for the same key share one in-flight task, successes are cached,
failures are never cached.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Mapping
from typing import Any, Protocol

from engine.kernel.types import GeneratedPageCacheEntry, PageRole, PageSpec

logger = logging.getLogger(__name__)

_STYLE_RE = re.compile(r"<style\b[^>]*>(.*?)</style\s*>", re.I | re.S)

# Ordered: first matching role wins
ROLE_KEYWORDS: list[tuple[PageRole, tuple[str, ...]]] = [
    ("checkout", ("checkout", "payment", "pay", "billing", "order")),
    ("cart", ("cart", "bag", "basket")),
    ("booking", ("book", "reserv", "appointment", "schedule")),
    ("contact", ("contact", "support", "inquiry", "enquiry")),
    ("products", ("product", "shop", "store", "catalog", "collection", "menu", "inventory")),
]

# Classifier page types that map directly onto a role
_PAGE_TYPE_ROLES: dict[str, PageRole] = {
    "checkout": "checkout",
    "cart": "cart",
    "products": "products",
}


class PageGenerationError(Exception):
    """Raised when a page could not be generated."""


class PageGenerator(Protocol):
    """Remote collaborator that turns a PageSpec into page markup."""

    async def generate(self, spec: PageSpec) -> str: ...


def normalize_page_key(label_or_path: str) -> str:
    """
    Turn a nav label or page path into a stable cache key.

    "/Checkout.html" → "checkout", "View Cart" → "view-cart", "/" → "index".
    """
    text = label_or_path.strip().lower()
    text = text.split("?", 1)[0].split("#", 1)[0]
    text = text.strip("/").removesuffix(".html")
    slug = re.sub(r"[^a-z0-9]+", "-", text).strip("-")
    return slug or "index"


def role_for(page_key: str, page_type: str | None = None, intent: str | None = None) -> PageRole:
    """Pick the page role from the suggested page type, intent, or key."""
    if page_type in _PAGE_TYPE_ROLES:
        return _PAGE_TYPE_ROLES[page_type]
    tokens = [t for t in re.split(r"[^a-z0-9]+", f"{intent or ''} {page_key}".lower()) if t]
    for role, keywords in ROLE_KEYWORDS:
        if any(t.startswith(k) for t in tokens for k in keywords):
            return role
    return "generic"


def style_excerpt(document: str, limit: int) -> str:
    """Bounded prefix of the document's <style> content, or of the document itself."""
    if limit <= 0 or not document:
        return ""
    styles = "\n".join(s.strip() for s in _STYLE_RE.findall(document) if s.strip())
    return (styles or document)[:limit]


class PageSynthesizer:
    """Generates and caches pages per session, coalescing concurrent requests."""

    def __init__(self, generator: PageGenerator, *, style_excerpt_chars: int = 2000):
        self._generator = generator
        self._style_excerpt_chars = style_excerpt_chars
        self._cache: dict[str, GeneratedPageCacheEntry] = {}
        self._in_flight: dict[str, asyncio.Task[str]] = {}
        self._epoch = 0

    def __contains__(self, page_key: str) -> bool:
        return normalize_page_key(page_key) in self._cache

    def cached(self, page_key: str) -> GeneratedPageCacheEntry | None:
        return self._cache.get(normalize_page_key(page_key))

    @property
    def page_keys(self) -> list[str]:
        return sorted(self._cache)

    def build_spec(self, page_key: str, context: Mapping[str, Any] | None = None) -> PageSpec:
        ctx = context or {}
        intent = ctx.get("source_intent")
        return PageSpec(
            page_key=page_key,
            role=role_for(page_key, ctx.get("page_type"), intent),
            nav_label=str(ctx.get("nav_label") or ""),
            style_excerpt=style_excerpt(str(ctx.get("document") or ""), self._style_excerpt_chars),
            source_intent=intent,
        )

    async def ensure_page(self, page_key: str, context: Mapping[str, Any] | None = None) -> str:
        """
        Return the content for a page, generating it if needed.

        Args:
            page_key: Label or path of the page; normalized before lookup
            context: Optional ``nav_label``, ``document`` (current markup, for
                the style excerpt), ``source_intent`` and ``page_type``

        Raises:
            PageGenerationError: If generation fails or returns empty content
        """
        key = normalize_page_key(page_key)

        entry = self._cache.get(key)
        if entry is not None:
            logger.debug("synth: cache hit for %s", key)
            return entry.content

        task = self._in_flight.get(key)
        if task is None:
            spec = self.build_spec(key, context)
            task = asyncio.ensure_future(self._generate(spec, self._epoch))
            self._in_flight[key] = task
            task.add_done_callback(lambda t, k=key: self._release(k, t))
        else:
            logger.debug("synth: joining in-flight generation for %s", key)

        return await asyncio.shield(task)

    async def _generate(self, spec: PageSpec, epoch: int) -> str:
        logger.info("synth: generating %s (role=%s)", spec.page_key, spec.role)
        try:
            content = await self._generator.generate(spec)
        except PageGenerationError:
            raise
        except Exception as e:
            logger.error("synth: generation failed for %s: %s", spec.page_key, e)
            raise PageGenerationError(f"Could not generate page '{spec.page_key}'") from e

        if not content or not content.strip():
            logger.error("synth: generator returned empty content for %s", spec.page_key)
            raise PageGenerationError(f"Generated page '{spec.page_key}' was empty")

        if epoch == self._epoch:
            self._cache[spec.page_key] = GeneratedPageCacheEntry(page_key=spec.page_key, content=content)
        return content

    def _release(self, key: str, task: asyncio.Task[str]) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        if not task.cancelled():
            # Mark the exception retrieved; awaiters already received it
            task.exception()

    def invalidate(self, page_key: str) -> bool:
        """Drop one cached page. Returns True if it was cached."""
        return self._cache.pop(normalize_page_key(page_key), None) is not None

    def clear(self) -> None:
        """Drop every cached page; generations already running are not cached."""
        self._cache.clear()
        self._epoch += 1
