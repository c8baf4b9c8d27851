"""WebSocket fan-out of report changes to connected sessions."""

from typing import Dict, List
import asyncio
import json
import logging

from fastapi import WebSocket

from civicfix.services.projections import ReportFilter
from civicfix.services.session import Session

logger = logging.getLogger(__name__)


def build_snapshot_message(session: Session, filters: ReportFilter = None) -> dict:
    reports = session.visible_reports(filters, include_pending=True)
    message = {
        "type": "snapshot",
        "reports": [
            {**report.model_dump(mode="json"), "sync_state": session.store.sync_state(report.id).value}
            for report in reports
        ],
        "counts": session.counts(filters, include_pending=True),
        "sync": session.reconciler.describe() if session.reconciler is not None else None,
    }
    return message


class ConnectionManager:
    def __init__(self):
        self._connections: Dict[str, List[WebSocket]] = {}

    def register(self, user_id: str, websocket: WebSocket):
        self._connections.setdefault(user_id, []).append(websocket)

    def disconnect(self, user_id: str, websocket: WebSocket):
        conns = self._connections.get(user_id, [])
        if websocket in conns:
            conns.remove(websocket)
        if not conns:
            self._connections.pop(user_id, None)

    @property
    def connection_count(self) -> int:
        return sum(len(conns) for conns in self._connections.values())

    async def serve(self, websocket: WebSocket, session: Session, filters: ReportFilter = None):
        """
        Push a fresh snapshot on connect and after every store change.

        Bursts of changes are coalesced into one message. Returns when the
        client disconnects; the caller closes the session.
        """
        dirty = asyncio.Event()
        dirty.set()
        session.subscribe(lambda kind, report_id: dirty.set())
        session.on_sync_status(lambda status: dirty.set())
        self.register(session.user.id, websocket)

        async def push():
            while True:
                await dirty.wait()
                dirty.clear()
                await websocket.send_text(json.dumps(build_snapshot_message(session, filters)))

        async def drain():
            # Inbound messages are ignored; this only detects disconnects
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    return

        tasks = [asyncio.create_task(push()), asyncio.create_task(drain())]
        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                if not task.cancelled() and task.exception() is not None:
                    logger.info(f"Live connection for {session.user.id} ended: {task.exception()}")
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            self.disconnect(session.user.id, websocket)


ws_manager = ConnectionManager()
