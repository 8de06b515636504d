# signaling.py
"""Room-scoped relay for WebRTC negotiation messages."""

import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import socketio

from rooms import RoomRegistry

logger = logging.getLogger(__name__)

NEGOTIATION_KINDS = ("offer", "answer", "ice-candidate")

# events pushed to clients
USER_JOINED = "user-joined"
PEER_LEFT = "peer-left"
CALL_ENDED = "call-ended"

Send = Callable[[str, str, Any], Awaitable[None]]


class SignalRelay:
    """
    Fans negotiation messages out to the other members of a room.

    A session is in at most one room; joining another room leaves the
    previous one first. `send(sid, event, data)` delivers to one session and
    is supplied by the transport. Payloads are never inspected.
    """

    def __init__(self, registry: RoomRegistry, send: Send):
        self.registry = registry
        self._send = send
        self._users: Dict[str, Optional[str]] = {}

    async def _broadcast(self, sid: str, room_id: str, event: str, data: Any) -> None:
        # sorted so delivery order is reproducible; awaited one by one to keep per-sender FIFO
        for member in sorted(self.registry.members_except(room_id, sid)):
            await self._send(member, event, data)

    async def _leave(self, sid: str, room_id: str) -> None:
        self.registry.leave(room_id, sid)
        logger.info("Session %s left room %s", sid, room_id)
        await self._broadcast(sid, room_id, PEER_LEFT, {"userId": self._users.get(sid)})

    async def on_join(self, sid: str, room_id: str, user_id: Optional[str] = None) -> None:
        for previous in self.registry.rooms_of(sid) - {room_id}:
            await self._leave(sid, previous)
        self._users[sid] = user_id
        self.registry.join(room_id, sid)
        logger.info("Session %s (user %s) joined room %s", sid, user_id, room_id)
        await self._broadcast(sid, room_id, USER_JOINED, {"userId": user_id})

    async def on_negotiation_message(self, sid: str, room_id: str, kind: str, payload: Any) -> None:
        if kind not in NEGOTIATION_KINDS:
            logger.debug("Dropping unknown message kind %r from %s", kind, sid)
            return
        await self._broadcast(sid, room_id, kind, payload)

    async def on_explicit_hangup(self, sid: str, room_id: str) -> None:
        await self._broadcast(sid, room_id, CALL_ENDED, {"userId": self._users.get(sid)})

    async def on_disconnect(self, sid: str) -> None:
        for room_id in self.registry.rooms_of(sid):
            await self._leave(sid, room_id)
        self._users.pop(sid, None)


def _room_id(payload: Any) -> Optional[str]:
    # early clients sent the bare room id instead of an object
    if isinstance(payload, (str, int)) and not isinstance(payload, bool):
        room_id = payload
    elif isinstance(payload, dict):
        room_id = payload.get("roomId")
    else:
        return None
    if room_id is None:
        return None
    room_id = str(room_id).strip()
    return room_id or None


class SignalingNamespace(socketio.AsyncNamespace):
    """Socket.IO adapter: validates event payloads and hands them to a SignalRelay."""

    def __init__(self, registry: RoomRegistry, namespace: str = "/"):
        super().__init__(namespace)
        self.relay = SignalRelay(registry, self._deliver)

    async def _deliver(self, sid: str, event: str, data: Any) -> None:
        await self.emit(event, data, to=sid)

    async def trigger_event(self, event, *args):
        # client events are kebab-case ("join-room"); handlers are on_join_room
        return await super().trigger_event(event.replace("-", "_"), *args)

    async def on_connect(self, sid, environ, auth=None):
        logger.info("Session %s connected", sid)

    async def on_disconnect(self, sid, reason=None):
        logger.info("Session %s disconnected", sid)
        await self.relay.on_disconnect(sid)

    async def on_join_room(self, sid, payload=None):
        room_id = _room_id(payload)
        if room_id is None:
            logger.debug("Dropping join-room without roomId from %s", sid)
            return
        user_id = payload.get("userId") if isinstance(payload, dict) else None
        await self.relay.on_join(sid, room_id, None if user_id is None else str(user_id))

    async def _negotiation(self, sid, kind, payload):
        room_id = _room_id(payload) if isinstance(payload, dict) else None
        if room_id is None:
            logger.debug("Dropping %s without roomId from %s", kind, sid)
            return
        message = {k: v for k, v in payload.items() if k != "roomId"}
        await self.relay.on_negotiation_message(sid, room_id, kind, message)

    async def on_offer(self, sid, payload=None):
        await self._negotiation(sid, "offer", payload)

    async def on_answer(self, sid, payload=None):
        await self._negotiation(sid, "answer", payload)

    async def on_ice_candidate(self, sid, payload=None):
        await self._negotiation(sid, "ice-candidate", payload)

    async def on_disconnect_call(self, sid, payload=None):
        room_id = _room_id(payload)
        if room_id is None:
            logger.debug("Dropping disconnect-call without roomId from %s", sid)
            return
        await self.relay.on_explicit_hangup(sid, room_id)
