"""
Label classifier for clicks inside the render surface.

Decides what a clicked button/link label means:
- nav:      header/footer navigation → route to an existing page or scroll
- redirect: action implying a new destination → synthesize the page if missing
- form:     form/overlay actions → intent pipeline
- external: kept for completeness; external phrasing resolves to an in-place
            redirect so the interaction never leaves the controlled surface
- ignore:   UI controls (filters, tabs, pagination) → do nothing

Pure and deterministic. The safe default is "nav" so that a classification
miss never triggers content synthesis.
"""

from __future__ import annotations

import re

from engine.kernel.types import ClassificationResult, ElementContext

# ---------------------------------------------------------------------------
# Pattern sets
# ---------------------------------------------------------------------------

NAV_PATTERNS: list[tuple[re.Pattern[str], float]] = [
    (re.compile(r"^home$", re.I), 1.0),
    (re.compile(r"^about(\s+us)?$", re.I), 1.0),
    (re.compile(r"^contact(\s+us)?$", re.I), 0.9),
    (re.compile(r"^faqs?$", re.I), 1.0),
    (re.compile(r"^blog$", re.I), 0.95),
    (re.compile(r"^services?$", re.I), 0.9),
    (re.compile(r"^portfolio$", re.I), 0.95),
    (re.compile(r"^pricing$", re.I), 0.9),
    (re.compile(r"^testimonials?$", re.I), 1.0),
    (re.compile(r"^features?$", re.I), 0.95),
    (re.compile(r"^team$", re.I), 1.0),
    (re.compile(r"^careers?$", re.I), 1.0),
    (re.compile(r"^privacy(\s+policy)?$", re.I), 1.0),
    (re.compile(r"^terms(\s+(of\s+service|&\s+conditions))?$", re.I), 1.0),
    (re.compile(r"^menu$", re.I), 0.9),
    (re.compile(r"^gallery$", re.I), 0.9),
    (re.compile(r"^our\s+(work|story|mission|team|process)$", re.I), 1.0),
    (re.compile(r"^how\s+it\s+works$", re.I), 0.95),
    (re.compile(r"^resources?$", re.I), 0.9),
    (re.compile(r"^press$", re.I), 1.0),
    (re.compile(r"^news$", re.I), 0.95),
    (re.compile(r"^partners?$", re.I), 1.0),
    (re.compile(r"^integrations?$", re.I), 0.95),
    (re.compile(r"^docs?(umentation)?$", re.I), 1.0),
    (re.compile(r"^help(\s+center)?$", re.I), 1.0),
    (re.compile(r"^support$", re.I), 0.95),
    (re.compile(r"^locations?$", re.I), 1.0),
    (re.compile(r"^reviews?$", re.I), 0.95),
]

# (pattern, confidence, page type)
REDIRECT_PATTERNS: list[tuple[re.Pattern[str], float, str]] = [
    # Commerce: browsing
    (re.compile(r"^(view|see|browse)\s+all$", re.I), 0.95, "products"),
    (re.compile(r"^shop\s+(now|all|collection)$", re.I), 0.95, "products"),
    (re.compile(r"^browse\s+(collection|catalog|products?|items?)$", re.I), 0.95, "products"),
    (re.compile(r"^explore\s+(collection|catalog|products?|more|all)$", re.I), 0.9, "products"),
    (re.compile(r"^(view|see)\s+(collection|catalog|products?|inventory)$", re.I), 0.9, "products"),
    (re.compile(r"^(all|full)\s+(products?|collection|catalog|menu|services?)$", re.I), 0.9, "products"),
    (re.compile(r"^discover\s+(more|all|our)$", re.I), 0.85, "products"),
    # Conversion: checkout/payment
    (re.compile(r"^(go\s+to\s+|proceed\s+to\s+)?checkout$", re.I), 1.0, "checkout"),
    (re.compile(r"^pay\s+now$", re.I), 1.0, "checkout"),
    (re.compile(r"^complete\s+(order|purchase)$", re.I), 1.0, "checkout"),
    (re.compile(r"^place\s+order$", re.I), 1.0, "checkout"),
    (re.compile(r"^(view|go\s+to)\s+cart$", re.I), 0.95, "cart"),
    (re.compile(r"^(my\s+)?cart$", re.I), 0.85, "cart"),
    (re.compile(r"^buy\s+now$", re.I), 0.9, "checkout"),
    # Content: expansion
    (re.compile(r"^learn\s+more$", re.I), 0.85, "details"),
    (re.compile(r"^read\s+more$", re.I), 0.85, "article"),
    (re.compile(r"^see\s+(more\s+)?details$", re.I), 0.9, "details"),
    (re.compile(r"^view\s+details$", re.I), 0.9, "details"),
    (re.compile(r"^(full|more)\s+details$", re.I), 0.9, "details"),
    (re.compile(r"^(view|see)\s+case\s+stud(y|ies)$", re.I), 0.9, "gallery"),
    (re.compile(r"^(view|see)\s+(our\s+)?work$", re.I), 0.85, "gallery"),
    (re.compile(r"^(view|see)\s+project$", re.I), 0.85, "gallery"),
    (re.compile(r"^(view|see)\s+profile$", re.I), 0.85, "about"),
    # Auth-driven pages
    (re.compile(r"^(sign\s+up|create\s+account|register)$", re.I), 0.9, "signup"),
    (re.compile(r"^(sign\s+in|log\s*in)$", re.I), 0.9, "login"),
    (re.compile(r"^(my\s+)?account$", re.I), 0.85, "login"),
    (re.compile(r"^(my\s+)?dashboard$", re.I), 0.85, "login"),
    # Generic expansion
    (re.compile(r"^get\s+started$", re.I), 0.8, "signup"),
    (re.compile(r"^start\s+(free\s+)?trial$", re.I), 0.85, "signup"),
    (re.compile(r"^join\s+(now|us|waitlist)$", re.I), 0.8, "signup"),
    (re.compile(r"^(view|compare)\s+plans?$", re.I), 0.85, "pricing"),
    (re.compile(r"^see\s+pricing$", re.I), 0.85, "pricing"),
]

FORM_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"^(book|reserve)\s+(now|a?\s*(table|call|session|appointment|demo))", re.I),
    re.compile(r"^(get|request)\s+(a\s+)?(free\s+)?(quote|estimate|consultation)", re.I),
    re.compile(r"^(subscribe|sign\s+up\s+for)", re.I),
    re.compile(r"^(send|submit)\s+(message|inquiry|request|form)", re.I),
    re.compile(r"^(contact|reach)\s+(us|out)", re.I),
    re.compile(r"^(download|get)\s+(guide|ebook|whitepaper|brochure)", re.I),
    re.compile(r"^(schedule|set\s+up)\s+(a\s+)?(call|meeting|consultation|demo)", re.I),
    re.compile(r"^add\s+to\s+cart$", re.I),
    re.compile(r"^(notify|alert)\s+(me|when)", re.I),
]

EXTERNAL_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"^(follow|connect)\s+(us\s+)?(on|@)", re.I),
    re.compile(r"^(visit|open)\s+(our\s+)?(website|site|store|app)", re.I),
    re.compile(r"^(call|phone|dial)\s+(us|now)", re.I),
    re.compile(r"^(email|mail)\s+(us|now)", re.I),
    re.compile(r"^(view\s+on|open\s+in)\s+", re.I),
]

IGNORE_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"^(sort|filter|show|hide|toggle|clear|reset|close|cancel|dismiss|back|next|prev)", re.I),
    re.compile(r"^(select|choose|pick)\s+(a\s+)?(size|color|option|variant|quantity)", re.I),
    re.compile(r"^\d+$"),
    re.compile(r"^[<>←→↑↓•·×✕✖]"),
]

# Declared intents that always mean "open the form/overlay flow"
FORM_INTENTS: set[str] = {
    "contact.submit",
    "newsletter.subscribe",
    "booking.create",
    "quote.request",
    "lead.capture",
}

# Structural nav only yields to redirect patterns at least this confident
NAV_REDIRECT_THRESHOLD = 0.9
NAV_REDIRECT_DAMPING = 0.95


def _matches_ignore(label: str) -> bool:
    return any(p.search(label) for p in IGNORE_PATTERNS)


def classify(label: str, context: ElementContext | None = None) -> ClassificationResult:
    """
    Classify a button/link label.

    Priority cascade: explicit flags > declared intent > structural context >
    label patterns (ignore → external → form → redirect → nav) > link target >
    default nav.

    Args:
        label: Visible text (or aria-label) of the clicked element
        context: Structural context captured inside the surface

    Returns:
        ClassificationResult with category, confidence and reason
    """
    text = " ".join(label.split())
    ctx = context or ElementContext()

    # 1. Explicit suppression
    if ctx.no_intent:
        return ClassificationResult("ignore", 1.0, "data-no-intent attribute present")

    # 2. Declared intent
    declared = ctx.declared_intent
    if declared:
        if declared.startswith("nav."):
            return ClassificationResult("nav", 1.0, f"Explicit nav intent: {declared}")
        if declared in FORM_INTENTS:
            return ClassificationResult("form", 1.0, f"Explicit form intent: {declared}")
        if declared.startswith("pay.") or declared == "cart.checkout":
            return ClassificationResult("redirect", 1.0, f"Payment intent: {declared}", "checkout")

    # 3. Structural context: nav/header/footer
    if ctx.is_in_nav or ctx.is_in_footer:
        if _matches_ignore(text):
            return ClassificationResult("ignore", 0.95, "UI control inside nav/footer")
        for pattern, confidence, page_type in REDIRECT_PATTERNS:
            if confidence >= NAV_REDIRECT_THRESHOLD and pattern.search(text):
                return ClassificationResult(
                    "redirect",
                    confidence * NAV_REDIRECT_DAMPING,
                    f'High-confidence redirect label in nav: "{text}"',
                    page_type,
                )
        return ClassificationResult("nav", 0.9, "Element is inside nav/header/footer")

    # 4. Ignore
    if _matches_ignore(text):
        return ClassificationResult("ignore", 0.95, "Matches ignore pattern")

    # 5. External → in-place redirect, never a new tab
    if any(p.search(text) for p in EXTERNAL_PATTERNS):
        return ClassificationResult("redirect", 0.9, "External pattern → in-place redirect", "details")

    # 6. Form (before redirect so "Book Now" is not a generic redirect)
    if any(p.search(text) for p in FORM_PATTERNS):
        return ClassificationResult("form", 0.9, "Matches form/overlay pattern")

    # 7. Redirect
    for pattern, confidence, page_type in REDIRECT_PATTERNS:
        if pattern.search(text):
            return ClassificationResult("redirect", confidence, f'Matches redirect pattern: "{text}"', page_type)

    # 8. Nav
    for pattern, confidence in NAV_PATTERNS:
        if pattern.search(text):
            return ClassificationResult("nav", confidence, f'Matches nav pattern: "{text}"')

    # 9. Link target
    href = ctx.href
    if href:
        if href.startswith("#"):
            return ClassificationResult("nav", 0.9, "Anchor link")
        if href.startswith(("http", "mailto:", "tel:")):
            return ClassificationResult("redirect", 0.85, "External URL → in-place redirect", "details")
        if href.endswith(".html") or href.startswith("/"):
            return ClassificationResult("nav", 0.8, "Internal path link")

    # 10. Default
    return ClassificationResult("nav", 0.5, "No pattern match, defaulting to nav")


def is_redirect_worthy(label: str, context: ElementContext | None = None) -> bool:
    """Quick check: would clicking this label synthesize a page?"""
    return classify(label, context).category == "redirect"


def redirect_page_type(label: str, context: ElementContext | None = None) -> str | None:
    """Suggested page type for a redirect-worthy label, else None."""
    result = classify(label, context)
    if result.category != "redirect":
        return None
    return result.suggested_page_type or "details"
