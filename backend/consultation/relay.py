"""
consultation/relay.py

Room bookkeeping and fan-out for the real-time layer.

A room is a Channels group. `rooms` records which connections (channel names)
are subscribed to which room in this process; subscribe/unsubscribe are its
only mutators and it empties when the process restarts. Delivery is
fire-and-forget: no acknowledgement, no retry.
"""

import logging
import threading
from collections import defaultdict

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

logger = logging.getLogger(__name__)

DIRECTORY_ROOM = "doctor_directory"


def consultation_room(consultation_id):
    return f"consultation_{consultation_id}"


def user_room(user_id):
    return f"user_{user_id}"


class RoomRegistry:
    """Thread-safe mapping of room key → set of subscribed channel names."""

    def __init__(self):
        self._lock  = threading.Lock()
        self._rooms = defaultdict(set)

    def subscribe(self, room, channel_name):
        with self._lock:
            self._rooms[room].add(channel_name)

    def unsubscribe(self, room, channel_name):
        with self._lock:
            members = self._rooms.get(room)
            if members is None:
                return
            members.discard(channel_name)
            if not members:
                del self._rooms[room]

    def members(self, room):
        with self._lock:
            return frozenset(self._rooms.get(room, ()))

    def is_subscribed(self, room, channel_name):
        with self._lock:
            return channel_name in self._rooms.get(room, ())

    def rooms_for(self, channel_name):
        with self._lock:
            return [room for room, members in self._rooms.items() if channel_name in members]

    def clear(self):
        with self._lock:
            self._rooms.clear()


rooms = RoomRegistry()


async def broadcast(room, payload, exclude=None):
    """Send `payload` to every connection in `room` except `exclude`."""
    channel_layer = get_channel_layer()
    await channel_layer.group_send(
        room,
        {
            "type"   : "relay_message",
            "payload": payload,
            "exclude": exclude,
        },
    )


def broadcast_from_sync(room, payload, exclude=None):
    """Best-effort broadcast for sync callers; transport errors are logged only."""
    try:
        async_to_sync(broadcast)(room, payload, exclude)
    except Exception:
        logger.exception("[Relay] broadcast of '%s' to %s failed", payload.get("type"), room)
