"""
In-process fan-out of live competition events.

Subscribers register for a room (``match:<id>`` or ``tournament:<id>``) and
receive events through a bounded queue. Delivery is best effort: a
subscriber that stops draining its queue loses events, scoring never waits.
"""
import json
import logging
import queue
import threading
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

POINT_SCORED = 'point_scored'
SET_ENDED = 'set_ended'
MATCH_ENDED = 'match_ended'
MATCH_STATUS_CHANGED = 'match_status_changed'
BRACKET_UPDATED = 'bracket_updated'

EVENT_TYPES = (POINT_SCORED, SET_ENDED, MATCH_ENDED, MATCH_STATUS_CHANGED, BRACKET_UPDATED)


def match_room(match_id) -> str:
    return f'match:{match_id}'


def tournament_room(tournament_id) -> str:
    return f'tournament:{tournament_id}'


def format_sse(event: str, payload: dict) -> str:
    """Encode one event in Server-Sent Events wire format."""
    return f"event: {event}\ndata: {json.dumps(payload, default=str)}\n\n"


class EventHub:
    def __init__(self, max_queue_size: int = 256):
        self.max_queue_size = max_queue_size
        self._rooms: Dict[str, List[queue.Queue]] = {}
        self._lock = threading.Lock()

    def subscribe(self, room: str) -> queue.Queue:
        q = queue.Queue(maxsize=self.max_queue_size)
        with self._lock:
            self._rooms.setdefault(room, []).append(q)
        return q

    def unsubscribe(self, room: str, q: queue.Queue):
        with self._lock:
            subscribers = self._rooms.get(room, [])
            if q in subscribers:
                subscribers.remove(q)
            if not subscribers:
                self._rooms.pop(room, None)

    def subscriber_count(self, room: str) -> int:
        with self._lock:
            return len(self._rooms.get(room, []))

    def publish(self, event: str, payload: dict, match_id=None, tournament_id=None) -> int:
        """Queue an event for every subscriber of the matching rooms.

        Returns the number of queues the event was delivered to.
        """
        if event not in EVENT_TYPES:
            raise ValueError(f'Unknown event type: {event}')
        rooms = []
        if match_id is not None:
            rooms.append(match_room(match_id))
        if tournament_id is not None:
            rooms.append(tournament_room(tournament_id))

        with self._lock:
            targets = [q for room in rooms for q in self._rooms.get(room, [])]

        delivered = 0
        for q in targets:
            try:
                q.put_nowait((event, payload))
                delivered += 1
            except queue.Full:
                logger.warning(f'Dropping {event} event for a slow subscriber ({rooms})')
        return delivered


def publish_all(hub: Optional[EventHub], events: list):
    """Publish (event, payload, match_id, tournament_id) tuples in order."""
    if hub is None:
        return
    for event, payload, match_id, tournament_id in events:
        hub.publish(event, payload, match_id=match_id, tournament_id=tournament_id)
