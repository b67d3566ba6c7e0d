from __future__ import annotations

import logging

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncJsonWebsocketConsumer

from .errors import WalkError
from .services import build_engine
from .ticks import TickRegistry

logger = logging.getLogger(__name__)

registry = TickRegistry()


def group_for(session_id) -> str:
    return f"walk_{session_id}"


class WalkConsumer(AsyncJsonWebsocketConsumer):
    """
    Relays per-second ticks and the final result of the caller's session.
    Settlement happens over HTTP; this socket only observes.
    """

    # ===============================
    # CONNECTION
    # ===============================

    async def connect(self):
        if self.scope["user"].is_anonymous:
            await self.close()
            return

        self.user = self.scope["user"]
        self.engine = build_engine()
        self.session_ids = set()
        await self.accept()
        await self.send_json({"type": "connected"})

    async def disconnect(self, close_code):
        for session_id in list(getattr(self, "session_ids", ())):
            await self._leave(session_id)

    # ===============================
    # MESSAGE ROUTER
    # ===============================

    async def receive_json(self, content, **kwargs):
        msg_type = content.get("type")
        session_id = str(content.get("session_id") or "")

        if msg_type == "ping":
            await self.send_json({"type": "pong"})
        elif msg_type == "join":
            await self.handle_join(session_id)
        elif msg_type == "leave":
            await self._leave(session_id)
        elif msg_type == "heartbeat":
            ok = await database_sync_to_async(self.engine.heartbeat)(self.user, session_id)
            await self.send_json({"type": "heartbeat_ack", "session_id": session_id, "ok": ok})
        else:
            await self.send_error("invalid_message_type", "Unknown message type")

    # ===============================
    # JOIN / LEAVE
    # ===============================

    async def handle_join(self, session_id):
        try:
            session = await database_sync_to_async(self.engine.get_session)(self.user, session_id)
        except WalkError as exc:
            await self.send_error(exc.code.value, exc.message)
            return

        group = group_for(session.pk)
        await self.channel_layer.group_add(group, self.channel_name)
        self.session_ids.add(str(session.pk))

        async def relay(payload):
            await self.channel_layer.group_send(group, {"type": "walk.event", "data": payload})

        registry.attach(
            session.pk,
            self.channel_name,
            poll=database_sync_to_async(self.engine.poll_tick),
            send=relay,
            interval=self.engine.cfg.tick_interval,
        )
        await self.send_json({"type": "joined", "session_id": str(session.pk), "status": session.status})

    async def _leave(self, session_id):
        if session_id not in self.session_ids:
            return
        self.session_ids.discard(session_id)
        registry.detach(session_id, self.channel_name)
        await self.channel_layer.group_discard(group_for(session_id), self.channel_name)

    # ===============================
    # GROUP EVENTS
    # ===============================

    async def walk_event(self, event):
        await self.send_json(event["data"])

    async def send_error(self, code, message):
        await self.send_json({
            "type": "error",
            "code": code,
            "message": message,
        })
