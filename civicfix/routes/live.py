"""
Live updates - one websocket per signed-in client.

The connection is the session: it opens on connect and is closed on
disconnect, which removes every listener it registered.
"""

from typing import Optional
import logging

from fastapi import APIRouter, HTTPException, Query, WebSocket, status

from civicfix.models.report import ReportCategory, ReportPriority, ReportStatus
from civicfix.routes.deps import resolve_user
from civicfix.services.live_service import ws_manager
from civicfix.services.projections import ReportFilter
from civicfix.services.session import Session

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Live"])


@router.websocket("/live")
async def live_updates(
    websocket: WebSocket,
    user_id: Optional[str] = Query(None),
    status_filter: Optional[ReportStatus] = Query(None, alias="status"),
    priority: Optional[ReportPriority] = Query(None),
    category: Optional[ReportCategory] = Query(None),
):
    store = getattr(websocket.app.state, "store", None)
    if store is None:
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        return

    try:
        user = await resolve_user(websocket, user_id or websocket.headers.get("x-user-id"))
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    session = Session(user, store, getattr(websocket.app.state, "reconciler", None))
    filters = ReportFilter(status=status_filter, priority=priority, category=category)
    logger.info(f"Live session opened for {user.id}")
    try:
        await ws_manager.serve(websocket, session, filters)
    finally:
        await session.close()
        logger.info(f"Live session closed for {user.id}")
