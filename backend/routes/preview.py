"""
Preview document routes.

GET /preview/{session_id}        — current bundled document, served sandboxed
GET /preview/{session_id}/pages  — tree files, synthesized pages, missing links
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException
from fastapi.responses import HTMLResponse

from backend.services.preview_session import session_registry
from engine.kernel.bundler import bundle
from engine.kernel.surface import CSP_HEADER

router = APIRouter(tags=["preview"])

# The document is untrusted: the browser must apply the same sandbox as the iframe
PREVIEW_HEADERS = {
    "Content-Security-Policy": CSP_HEADER,
    "X-Content-Type-Options": "nosniff",
    "Cache-Control": "no-store",
}


@router.get("/preview/{session_id}", response_class=HTMLResponse)
async def preview_document(session_id: str) -> HTMLResponse:
    """Serve the session's current document (empty state for unknown sessions)."""
    session = session_registry.get(session_id)
    markup = session.surface.current_document if session else bundle("").markup
    return HTMLResponse(content=markup, headers=PREVIEW_HEADERS)


@router.get("/preview/{session_id}/pages")
async def preview_pages(session_id: str) -> dict[str, list[str]]:
    session = session_registry.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return session.page_summary()
