"""
Preview Kernel — the pure protocol core.

Six components:
  classifier   — clicked label → nav / redirect / form / external / ignore
  bundler      — raw source → self-contained document with the capture block
  surface      — render surface controller (the only writer to the surface)
  dispatcher   — surface messages → local effects, remote calls, synthesis
  synthesizer  — on-demand page generation, cached and coalesced per key
  sync         — buffer ⇄ virtual file tree ⇄ surface without update cycles

Wire models live in protocol; shared dataclasses in types.
"""

from engine.kernel.bundler import bundle, split_pages, suggest_missing_pages
from engine.kernel.classifier import classify, is_redirect_worthy, redirect_page_type
from engine.kernel.dispatcher import HANDLERS, HandlerKind, HandlerSpec, IntentDispatcher
from engine.kernel.protocol import KnownIntent, ProtocolError, parse_message
from engine.kernel.surface import CSP_HEADER, SANDBOX, RenderSurfaceController
from engine.kernel.synthesizer import PageGenerationError, PageSynthesizer, normalize_page_key
from engine.kernel.sync import MemoryFileTree, SourceSyncManager

__all__ = [
    "classify",
    "is_redirect_worthy",
    "redirect_page_type",
    "bundle",
    "split_pages",
    "suggest_missing_pages",
    "RenderSurfaceController",
    "SANDBOX",
    "CSP_HEADER",
    "IntentDispatcher",
    "HANDLERS",
    "HandlerKind",
    "HandlerSpec",
    "KnownIntent",
    "ProtocolError",
    "parse_message",
    "PageSynthesizer",
    "PageGenerationError",
    "normalize_page_key",
    "SourceSyncManager",
    "MemoryFileTree",
]
