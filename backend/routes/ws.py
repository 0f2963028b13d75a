"""
WebSocket endpoint for the preview channel.

Accepts connections at /ws/preview/{session_id}. One socket carries two kinds
of frames:

  editor frames   buffer.set, file.write, element.update, edit_mode,
                  workspace.clear
  surface frames  everything else; relayed from the render surface and
                  handed to the session's intent dispatcher

Host→surface messages and editor events are sent back on the same socket.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from backend.config import settings
from backend.services.preview_session import PreviewSession, session_registry

logger = logging.getLogger(__name__)

_SESSION_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")

router = APIRouter(tags=["websocket"])

_EDITOR_TYPES = {"buffer.set", "file.write", "element.update", "edit_mode", "workspace.clear"}


async def _send_error(websocket: WebSocket, msg_type: str, error: str) -> None:
    await websocket.send_text(json.dumps({"type": "editor.error", "for": msg_type, "error": error}))


async def _handle_editor_frame(websocket: WebSocket, session: PreviewSession, msg: dict[str, Any]) -> None:
    """
    Apply one editor frame to the session.

    Protocol:
      {"type": "buffer.set", "content": "..."}
      {"type": "file.write", "path": "/styles.css", "content": "..."}
      {"type": "element.update", "selector": "#hero h1", "patch": {"text": "..."}}
      {"type": "edit_mode", "enabled": true}
      {"type": "workspace.clear"}
    """
    msg_type = msg["type"]

    if msg_type == "buffer.set":
        content = msg.get("content")
        if not isinstance(content, str):
            await _send_error(websocket, msg_type, "content must be a string")
            return
        session.set_buffer(content)

    elif msg_type == "file.write":
        path, content = msg.get("path"), msg.get("content")
        if not isinstance(path, str) or not path.strip() or not isinstance(content, str):
            await _send_error(websocket, msg_type, "path and content are required")
            return
        session.write_file(path, content)

    elif msg_type == "element.update":
        selector, patch = msg.get("selector"), msg.get("patch")
        if not isinstance(selector, str) or not isinstance(patch, dict):
            await _send_error(websocket, msg_type, "selector and patch are required")
            return
        try:
            await session.update_element(selector, patch)
        except ValueError as e:
            logger.warning("ws: element.update rejected: %s", e)
            await _send_error(websocket, msg_type, str(e))

    elif msg_type == "edit_mode":
        await session.set_edit_mode(msg.get("enabled") is True)

    elif msg_type == "workspace.clear":
        await session.clear_workspace()


@router.websocket("/ws/preview/{session_id}")
async def preview_websocket(websocket: WebSocket, session_id: str) -> None:
    """
    WebSocket endpoint for one preview session.

    On connect the current document is written to the surface. Malformed
    frames are dropped with a warning; the connection stays open.
    """
    if not _SESSION_ID_RE.match(session_id):
        await websocket.close(code=1008)
        return

    await websocket.accept()
    session = await session_registry.acquire(session_id)

    async def _send(message: dict[str, Any]) -> None:
        await websocket.send_text(json.dumps(message))

    session.attach(_send)
    logger.info("ws: connected session_id=%s", session_id)

    try:
        await session.surface.write_document(session.surface.current_document)

        while True:
            raw = await websocket.receive_text()
            if len(raw.encode()) > settings.MAX_MESSAGE_BYTES:
                logger.warning("ws: dropped oversized frame (%d bytes)", len(raw))
                continue

            try:
                msg = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning("ws: received invalid JSON: %r", raw[:200])
                continue

            if not isinstance(msg, dict):
                logger.warning("ws: dropped non-object frame")
                continue

            if msg.get("type") in _EDITOR_TYPES:
                await _handle_editor_frame(websocket, session, msg)
            else:
                session.handle_surface_message(msg)

    except WebSocketDisconnect:
        logger.info("ws: disconnected session_id=%s", session_id)
    finally:
        session_registry.release(session_id)
