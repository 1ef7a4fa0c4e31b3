"""
consultation/consumers.py

ConsultationConsumer: one WebSocket per signed-in client, subscribed to any
number of rooms:
  consultation_<id>   chat, typing and call signalling for one consultation
  user_<id>           personal notifications
  doctor_directory    availability changes (joined automatically)

Wire protocol, both directions: JSON objects with a "type" field.

  Client → server
    { "type": "joinConsultationRoom",  "consultationId" }
    { "type": "leaveConsultationRoom", "consultationId" }
    { "type": "joinUserRoom",          "userId" }
    { "type": "typing",                "consultationId", "isTyping" }
    { "type": "sendMessage",           "consultationId", "content", "messageType", "fileUrl" }
    { "type": "callRequest",           "consultationId", "callType": "audio"|"video" }
    { "type": "callAccepted" | "callRejected" | "callEnded", "consultationId" }
    { "type": "offer" | "answer" | "iceCandidate", "consultationId", <opaque payload> }

  Server → client
    roomJoined, roomLeft, userRoomJoined, receiveMessage, userTyping,
    incomingCall, callAccepted, callRejected, callEnded, offer, answer,
    iceCandidate, consultationStatusChanged, consultationBooked,
    doctorAvailabilityChanged, error

The server keeps no call state. Ephemeral events are relayed only from a
connection subscribed to the room and are dropped silently otherwise.
"""

import json
import logging

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncWebsocketConsumer

from . import relay, services
from .auth import role_of
from .exceptions import ConsultationError

logger = logging.getLogger(__name__)

CALL_TYPES = ("audio", "video")

# Signalling events relayed as-is, keyed by the field carrying the opaque payload
SIGNAL_FIELDS = {
    "offer"       : "offer",
    "answer"      : "answer",
    "iceCandidate": "candidate",
}

# Handshake rejected: no token, bad token, or unknown account
CLOSE_UNAUTHENTICATED = 4001


def _as_id(value):
    """Whole-number ids only: ints (not bools) or digit strings."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.isascii() and value.isdigit():
        return int(value)
    return None


class ConsultationConsumer(AsyncWebsocketConsumer):

    async def connect(self):
        self.user = self.scope.get("user")
        if self.user is None or not self.user.is_authenticated:
            logger.warning("[Relay] handshake rejected: missing or invalid token")
            await self.close(code=CLOSE_UNAUTHENTICATED)
            return

        self.user_name = self.user.get_full_name() or self.user.username
        self.user_role = role_of(self.user)

        await self.accept()
        await self._subscribe(relay.DIRECTORY_ROOM)
        logger.info("[Relay] user=%s (%s) connected  channel=%s", self.user.pk, self.user_role, self.channel_name)

    async def disconnect(self, close_code):
        for room in relay.rooms.rooms_for(self.channel_name):
            await self._unsubscribe(room)
        logger.info("[Relay] channel=%s left  code=%s", self.channel_name, close_code)

    async def receive(self, text_data=None, bytes_data=None):
        try:
            data = json.loads(text_data or "")
        except ValueError:
            return
        if not isinstance(data, dict):
            return

        msg_type = data.get("type")
        handler  = self.handlers.get(msg_type) if isinstance(msg_type, str) else None
        if handler is None:
            logger.debug("[Relay] dropped unknown event %r from user=%s", msg_type, self.user.pk)
            return
        await handler(self, data)

    # ── Rooms ────────────────────────────────────────────────────────────────

    async def _subscribe(self, room):
        relay.rooms.subscribe(room, self.channel_name)
        await self.channel_layer.group_add(room, self.channel_name)

    async def _unsubscribe(self, room):
        relay.rooms.unsubscribe(room, self.channel_name)
        await self.channel_layer.group_discard(room, self.channel_name)

    async def join_consultation_room(self, data):
        consultation_id = _as_id(data.get("consultationId"))
        try:
            await database_sync_to_async(services.get_conversation)(consultation_id, self.user)
        except ConsultationError as exc:
            await self._send_event({
                "type" : "error",
                "event": "joinConsultationRoom",
                "kind" : exc.kind,
                "error": str(exc.detail),
            })
            return

        await self._subscribe(relay.consultation_room(consultation_id))
        await self._send_event({"type": "roomJoined", "consultationId": consultation_id})
        logger.info("[Relay] user=%s joined consultation room %s", self.user.pk, consultation_id)

    async def leave_consultation_room(self, data):
        consultation_id = _as_id(data.get("consultationId"))
        if consultation_id is None:
            return
        await self._unsubscribe(relay.consultation_room(consultation_id))
        await self._send_event({"type": "roomLeft", "consultationId": consultation_id})
        logger.info("[Relay] user=%s left consultation room %s", self.user.pk, consultation_id)

    async def join_user_room(self, data):
        if _as_id(data.get("userId")) != self.user.pk:
            logger.warning("[Relay] user=%s tried to join user room %r", self.user.pk, data.get("userId"))
            return
        await self._subscribe(relay.user_room(self.user.pk))
        await self._send_event({"type": "userRoomJoined", "userId": self.user.pk})

    def _subscribed_room(self, data):
        """Room for an ephemeral event, or None when this connection is not in it."""
        consultation_id = _as_id(data.get("consultationId"))
        if consultation_id is None:
            return None, None
        room = relay.consultation_room(consultation_id)
        if not relay.rooms.is_subscribed(room, self.channel_name):
            logger.debug("[Relay] dropped %r from user=%s: not in %s", data.get("type"), self.user.pk, room)
            return None, None
        return consultation_id, room

    # ── Chat ─────────────────────────────────────────────────────────────────

    async def send_message(self, data):
        content = data.get("content")
        if content is None and isinstance(data.get("message"), str):
            content = data["message"]

        try:
            await database_sync_to_async(services.send_message)(
                _as_id(data.get("consultationId")),
                self.user,
                content,
                message_type=data.get("messageType") or "text",
                file_url=data.get("fileUrl") or "",
            )
        except ConsultationError as exc:
            await self._send_event({
                "type" : "error",
                "event": "sendMessage",
                "kind" : exc.kind,
                "error": str(exc.detail),
            })

    async def typing(self, data):
        consultation_id, room = self._subscribed_room(data)
        if room is None:
            return
        await relay.broadcast(room, {
            "type"          : "userTyping",
            "consultationId": consultation_id,
            "isTyping"      : bool(data.get("isTyping")),
            "userId"        : self.user.pk,
            "userName"      : self.user_name,
        }, exclude=self.channel_name)

    # ── Calls ────────────────────────────────────────────────────────────────

    async def call_request(self, data):
        consultation_id, room = self._subscribed_room(data)
        if room is None or data.get("callType") not in CALL_TYPES:
            return
        await relay.broadcast(room, {
            "type"          : "incomingCall",
            "consultationId": consultation_id,
            "callType"      : data["callType"],
            "caller"        : {"id": self.user.pk, "name": self.user_name, "role": self.user_role},
        }, exclude=self.channel_name)

    async def call_accepted(self, data):
        consultation_id, room = self._subscribed_room(data)
        if room is None:
            return
        await relay.broadcast(room, {
            "type"          : "callAccepted",
            "consultationId": consultation_id,
            "callType"      : data.get("callType"),
        }, exclude=self.channel_name)

    async def call_rejected(self, data):
        await self._relay_bare(data, "callRejected")

    async def call_ended(self, data):
        await self._relay_bare(data, "callEnded")

    async def _relay_bare(self, data, event_type):
        consultation_id, room = self._subscribed_room(data)
        if room is None:
            return
        await relay.broadcast(room, {
            "type"          : event_type,
            "consultationId": consultation_id,
        }, exclude=self.channel_name)

    async def signal(self, data):
        consultation_id, room = self._subscribed_room(data)
        if room is None:
            return
        field = SIGNAL_FIELDS[data["type"]]
        await relay.broadcast(room, {
            "type"          : data["type"],
            "consultationId": consultation_id,
            "from"          : self.user.pk,
            field           : data.get(field),
        }, exclude=self.channel_name)

    handlers = {
        "joinConsultationRoom" : join_consultation_room,
        "leaveConsultationRoom": leave_consultation_room,
        "joinUserRoom"         : join_user_room,
        "sendMessage"          : send_message,
        "typing"               : typing,
        "callRequest"          : call_request,
        "callAccepted"         : call_accepted,
        "callRejected"         : call_rejected,
        "callEnded"            : call_ended,
        "offer"                : signal,
        "answer"               : signal,
        "iceCandidate"         : signal,
    }

    # ── Channel layer → socket ───────────────────────────────────────────────

    async def relay_message(self, event):
        if event.get("exclude") and self.channel_name == event["exclude"]:
            return
        await self.send(text_data=json.dumps(event["payload"]))

    async def _send_event(self, payload):
        await self.send(text_data=json.dumps(payload))
