"""
DCLense - Realtime list (WebSocket)

/api/realtime/{entity_type}?token=...

Client -> server:
  {"action": "filters", "filters": {...}, "page": n}
  {"action": "page", "page": n}
  {"action": "refresh"}
  "ping"

Server -> client:
  {"type": "snapshot", "rows": [...], "total": n, "version": v, ...}
  {"type": "error", "message": "..."}
"""

import json
import logging
from functools import partial

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Query
from pydantic import ValidationError

from config import PAGE_SIZE_DEFAULT, REALTIME_RESYNC_SECONDS
from models import EntityType
from routes.auth import get_user_from_token
from services.live_list import LiveList
from services.queries import fetch_page, enrich_rows
from services.user_reads import apply_read_overrides

logger = logging.getLogger("realtime")

router = APIRouter(prefix="/realtime", tags=["Realtime"])


async def _send(websocket: WebSocket, message: dict) -> None:
    try:
        await websocket.send_json(message)
    except (WebSocketDisconnect, RuntimeError) as e:
        logger.debug(f"[REALTIME] send skipped, socket closed: {str(e)}")


def build_live_list(db, channels, entity_type: EntityType, user_id: str, on_change=None,
                    page_size: int = PAGE_SIZE_DEFAULT) -> LiveList:
    """LiveList wired to Mongo: per-user fetch + enrichment with read overrides"""

    async def fetch(filters, page, size):
        return await fetch_page(db, entity_type, filters, page, size, user_id)

    async def enrich(rows):
        rows = await enrich_rows(db, entity_type, rows)
        return await apply_read_overrides(db, user_id, entity_type, rows)

    return LiveList(
        entity_type,
        fetch,
        channels,
        page_size=page_size,
        enrich=enrich,
        on_change=on_change,
        resync_interval=REALTIME_RESYNC_SECONDS or None,
    )


async def _push_state(websocket: WebSocket, live: LiveList) -> None:
    await _send(websocket, live.snapshot())
    if live.error:
        await _send(websocket, {"type": "error", "message": live.error})


async def _handle_message(websocket: WebSocket, live: LiveList, raw: str) -> None:
    if raw == "ping":
        await websocket.send_text("pong")
        return

    try:
        message = json.loads(raw)
    except ValueError:
        await _send(websocket, {"type": "error", "message": "Invalid JSON"})
        return
    if not isinstance(message, dict):
        await _send(websocket, {"type": "error", "message": "Message must be an object"})
        return

    action = message.get("action")
    try:
        if action == "filters":
            await live.set_filters(message.get("filters") or {}, page=message.get("page") or 1)
        elif action == "page":
            await live.set_page(message.get("page") or 1)
        elif action == "refresh":
            await live.refresh()
        else:
            await _send(websocket, {"type": "error", "message": f"Unknown action: {action}"})
    except ValidationError as e:
        await _send(websocket, {
            "type": "error",
            "message": "Invalid filters",
            "details": e.errors(include_url=False, include_context=False),
        })
    except (TypeError, ValueError) as e:
        await _send(websocket, {"type": "error", "message": str(e)})


@router.websocket("/{entity_type}")
async def realtime_list(
    websocket: WebSocket,
    entity_type: str,
    token: str = Query(None),
):
    db = websocket.app.state.db
    channels = websocket.app.state.channels

    try:
        entity = EntityType(entity_type)
    except ValueError:
        await websocket.close(code=4004, reason="Unknown entity type")
        return

    user = await get_user_from_token(db, token)
    if not user:
        await websocket.close(code=4001, reason="Authentication required")
        return

    await websocket.accept()
    live = build_live_list(db, channels, entity, user["id"], on_change=partial(_push_state, websocket))
    logger.info(f"[REALTIME] {user.get('email')} opened {entity.value}")

    try:
        await live.start()
        while True:
            raw = await websocket.receive_text()
            await _handle_message(websocket, live, raw)
    except WebSocketDisconnect:
        pass
    finally:
        await live.stop()
        logger.info(f"[REALTIME] {user.get('email')} closed {entity.value}")
