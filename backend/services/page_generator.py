"""
Page generators for the dynamic page synthesizer.

AnthropicPageGenerator asks the model for one complete HTML page styled like
the current document. TemplatePageGenerator renders deterministic pages per
role without network access; it backs tests and local development the way
the mock LLM backs streaming tests.
"""

from __future__ import annotations

import asyncio
import html
import logging
import re

import anthropic

from backend.config import Settings
from backend.services.anthropic_client import AnthropicClient
from engine.kernel.synthesizer import PageGenerationError
from engine.kernel.types import PageSpec

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You generate single pages for a website that is being previewed.

Rules:
- Output ONE complete HTML document, starting with <!DOCTYPE html>. No commentary, no markdown.
- All CSS goes in one <style> block in <head>. No external stylesheets, fonts, or scripts.
- Match the visual language of the style excerpt you are given: colors, fonts, spacing, radius.
- Use realistic placeholder content appropriate to the page role.
- Interactive elements declare their purpose with data-intent attributes
  (e.g. data-intent="cart.checkout", data-intent="contact.submit").
- Navigation links back to the home page use href="/index.html".
"""

ROLE_BRIEFS: dict[str, str] = {
    "checkout": "A checkout page: order summary, shipping and payment form, and a place-order button.",
    "cart": "A shopping cart page: line items with quantities, subtotal, and a checkout button.",
    "contact": "A contact page: contact form (name, email, message), address and hours.",
    "booking": "A booking page: date/time picker, party size or service selection, and a confirm button.",
    "products": "A product listing page: a grid of product cards with image, name, price, add-to-cart.",
    "generic": "A content page that fits the link the visitor clicked.",
}

_FENCE_RE = re.compile(r"^```(?:html)?\s*\n(.*?)\n```\s*$", re.S)


def build_page_prompt(spec: PageSpec) -> str:
    """User message describing the page to generate."""
    parts = [
        f"Page key: {spec.page_key}",
        f"Role: {spec.role}",
        f"Brief: {ROLE_BRIEFS.get(spec.role, ROLE_BRIEFS['generic'])}",
    ]
    if spec.nav_label:
        parts.append(f"The visitor clicked: {spec.nav_label!r}")
    if spec.source_intent:
        parts.append(f"Originating intent: {spec.source_intent}")
    if spec.style_excerpt:
        parts.append(f"Style excerpt from the current page:\n<style>\n{spec.style_excerpt}\n</style>")
    return "\n\n".join(parts)


def extract_document(text: str) -> str:
    """Strip markdown fences and leading chatter from a model response."""
    text = text.strip()
    match = _FENCE_RE.match(text)
    if match:
        text = match.group(1).strip()
    start = text.lower().find("<!doctype")
    if start == -1:
        start = text.lower().find("<html")
    if start > 0:
        text = text[start:]
    return text


class AnthropicPageGenerator:
    """Generates pages with the Anthropic Messages API."""

    def __init__(self, client: AnthropicClient, model: str, max_tokens: int = 8192):
        self.client = client
        self.model = model
        self.max_tokens = max_tokens

    async def generate(self, spec: PageSpec) -> str:
        messages = [{"role": "user", "content": build_page_prompt(spec)}]
        try:
            text = await self.client.complete(
                messages,
                SYSTEM_PROMPT,
                model=self.model,
                max_tokens=self.max_tokens,
                cache_system=True,
            )
        except anthropic.APIError as e:
            logger.error("page_generator: anthropic call failed for %s: %s", spec.page_key, e)
            raise PageGenerationError(f"Page generation failed for '{spec.page_key}'") from e

        document = extract_document(text)
        if "<" not in document:
            raise PageGenerationError(f"Model returned no markup for '{spec.page_key}'")
        usage = await self.client.get_usage_stats() or {}
        logger.info(
            "page_generator: generated %s (%d chars, %s in / %s out tokens, %s cached)",
            spec.page_key,
            len(document),
            usage.get("input_tokens", "?"),
            usage.get("output_tokens", "?"),
            usage.get("cache_read_input_tokens", 0),
        )
        return document


# ---------------------------------------------------------------------------
# Offline templates
# ---------------------------------------------------------------------------

_TEMPLATE_SECTIONS: dict[str, str] = {
    "checkout": (
        "<section><h2>Order summary</h2><p>2 items &middot; <strong>$84.00</strong></p></section>"
        '<form data-intent="pay.checkout"><label>Email <input name="email" type="email"></label>'
        '<label>Card number <input name="card" inputmode="numeric"></label>'
        '<button type="submit">Place order</button></form>'
    ),
    "cart": (
        '<ul class="cart"><li>Classic Tee &times; 1 <span>$28.00</span></li>'
        "<li>Canvas Tote &times; 2 <span>$56.00</span></li></ul>"
        '<p>Subtotal: <strong>$84.00</strong></p><a href="/checkout.html">Proceed to Checkout</a>'
    ),
    "contact": (
        '<form data-intent="contact.submit"><label>Name <input name="name"></label>'
        '<label>Email <input name="email" type="email"></label>'
        '<label>Message <textarea name="message"></textarea></label>'
        '<button type="submit">Send message</button></form>'
    ),
    "booking": (
        '<form id="booking" data-intent="booking.create"><label>Name <input name="name"></label>'
        '<label>Date <input name="date" type="date"></label>'
        '<label>Time <input name="time" type="time"></label>'
        '<button type="submit">Book now</button></form>'
    ),
    "products": (
        '<div class="grid">'
        '<article><h3>Classic Tee</h3><p>$28.00</p><button data-intent="cart.add">Add to cart</button></article>'
        '<article><h3>Canvas Tote</h3><p>$28.00</p><button data-intent="cart.add">Add to cart</button></article>'
        '<article><h3>Field Cap</h3><p>$22.00</p><button data-intent="cart.add">Add to cart</button></article>'
        "</div>"
    ),
    "generic": "<p>More details are coming soon.</p>",
}


class TemplatePageGenerator:
    """Deterministic offline page generator with an optional delay."""

    def __init__(self, delay_ms: int = 0):
        self.delay_ms = delay_ms
        self.calls: list[PageSpec] = []

    async def generate(self, spec: PageSpec) -> str:
        self.calls.append(spec)
        if self.delay_ms > 0:
            await asyncio.sleep(self.delay_ms / 1000)

        title = spec.nav_label or spec.page_key.replace("-", " ").title()
        body = _TEMPLATE_SECTIONS.get(spec.role, _TEMPLATE_SECTIONS["generic"])
        return (
            "<!DOCTYPE html>\n"
            '<html lang="en">\n'
            "<head>\n"
            '<meta charset="utf-8">\n'
            f"<title>{html.escape(title)}</title>\n"
            f"<style>\n{spec.style_excerpt}\n</style>\n"
            "</head>\n"
            f'<body data-page="{html.escape(spec.page_key)}">\n'
            f'<header><a href="/index.html">Home</a></header>\n'
            f"<main><h1>{html.escape(title)}</h1>{body}</main>\n"
            "</body>\n"
            "</html>\n"
        )


def create_page_generator(settings: Settings) -> AnthropicPageGenerator | TemplatePageGenerator:
    """Pick the generator for the current environment."""
    if settings.use_template_generator:
        logger.info("page_generator: using offline templates")
        return TemplatePageGenerator()
    client = AnthropicClient(api_key=settings.ANTHROPIC_API_KEY)
    return AnthropicPageGenerator(client, model=settings.PAGE_MODEL, max_tokens=settings.PAGE_MAX_TOKENS)
