"""Socket.IO relay of change feed events to browsers."""

from __future__ import annotations

from typing import Any, Dict, Optional

import socketio
from aiohttp import web as aiohttp_web

from inphrone.core.constants import Tables
from inphrone.core.logger import get_logger
from inphrone.services.realtime import ChangeEvent, ChangeFeed

logger = get_logger(__name__)

SUBSCRIBABLE_TABLES = {
    Tables.SLOTS,
    Tables.QUESTIONS,
    Tables.VOTES,
    Tables.INPHROSYNC_RESPONSES,
    Tables.OPINIONS,
    Tables.COUPONS,
    Tables.NOTIFICATIONS,
}


def room_name(table: str, row_id: Optional[Any] = None) -> str:
    return f"table:{table}" if row_id is None else f"table:{table}:{row_id}"


class WebSocketManager:
    """Forwards ``row_changed`` events into per-table and per-row rooms.

    Clients emit ``subscribe`` with ``{"table": ..., "row_id": ...}`` and
    re-fetch over HTTP whenever ``row_changed`` arrives.
    """

    def __init__(self, feed: ChangeFeed, sio: Optional[socketio.AsyncServer] = None) -> None:
        self.feed = feed
        self.sio = sio or socketio.AsyncServer(async_mode="aiohttp", cors_allowed_origins="*")
        self.online: Dict[str, set] = {}
        self._register_handlers()
        feed.add_listener(self.relay)

    def attach(self, app: aiohttp_web.Application) -> None:
        self.sio.attach(app)

    def _register_handlers(self) -> None:
        @self.sio.event
        async def connect(sid, environ, auth=None):
            self.online[sid] = set()

        @self.sio.event
        async def disconnect(sid):
            self.online.pop(sid, None)

        @self.sio.event
        async def subscribe(sid, data):
            room = self._room_from(data)
            if room is None:
                return {"ok": False, "error": "unknown table"}
            await self.sio.enter_room(sid, room)
            self.online.setdefault(sid, set()).add(room)
            return {"ok": True, "room": room}

        @self.sio.event
        async def unsubscribe(sid, data):
            room = self._room_from(data)
            if room is None:
                return {"ok": False, "error": "unknown table"}
            await self.sio.leave_room(sid, room)
            self.online.get(sid, set()).discard(room)
            return {"ok": True, "room": room}

    @staticmethod
    def _room_from(data: Any) -> Optional[str]:
        if not isinstance(data, dict) or data.get("table") not in SUBSCRIBABLE_TABLES:
            return None
        return room_name(data["table"], data.get("row_id"))

    async def relay(self, event: ChangeEvent) -> None:
        payload = event.to_dict()
        await self.sio.emit("row_changed", payload, room=room_name(event.table))
        if event.row_id is not None:
            await self.sio.emit("row_changed", payload, room=room_name(event.table, event.row_id))

    def get_online_count(self) -> int:
        return len(self.online)
