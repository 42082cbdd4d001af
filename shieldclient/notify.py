"""Publish/subscribe surface through which the session reports to callers."""

import threading
from collections import defaultdict
from typing import Any, Callable

from .common import log

EVENT_SAMPLE         = "sample"
EVENT_IMPEDANCE      = "impedance"
EVENT_RAW_PACKET     = "raw_packet"
EVENT_SHIELD_FOUND   = "shield_found"
EVENT_DROPPED_PACKET = "dropped_packet"
EVENT_CLOSE          = "close"
EVENT_MESSAGE        = "message"

EVENTS = (
    EVENT_SAMPLE,
    EVENT_IMPEDANCE,
    EVENT_RAW_PACKET,
    EVENT_SHIELD_FOUND,
    EVENT_DROPPED_PACKET,
    EVENT_CLOSE,
    EVENT_MESSAGE,
)


class Notifier:
    """
    Callback registry keyed by event name.
    Listeners run on the publishing thread; a failing listener is logged
    and does not stop delivery to the others.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._listeners: dict[str, list[Callable[[Any], None]]] = defaultdict(list)

    def on(self, event: str, cb: Callable[[Any], None]):
        if event not in EVENTS:
            raise ValueError(f"Unknown event: {event}")
        with self._lock:
            self._listeners[event].append(cb)

    def off(self, event: str, cb: Callable[[Any], None]):
        with self._lock:
            try:
                self._listeners[event].remove(cb)
            except ValueError:
                pass

    def clear(self, event: str = None):
        with self._lock:
            if event is None:
                self._listeners.clear()
            else:
                self._listeners.pop(event, None)

    def emit(self, event: str, payload: Any = None):
        with self._lock:
            listeners = list(self._listeners.get(event, ()))
        for cb in listeners:
            try:
                cb(payload)
            except Exception as e:
                log.error(f"Listener for '{event}' failed: {e}", exc_info=True)
