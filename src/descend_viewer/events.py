"""
Event Channel - server-sent events pushed to every connected viewer.

Events are ``{"type": ..., "data": ...}`` objects, JSON encoded and then
base64 encoded so nothing in the payload can break the ``data:`` framing.

Event types:
    reload      viewer assets changed, the page reloads itself
    programMod  the parser program changed, the last request is repeated
    fileMod     a source file changed, ``data`` is its path relative to root
"""
import base64
import json
import logging
import queue
import threading
from typing import Any, Iterator, List, Optional, Set, Tuple

from .errors import TransportError

logger = logging.getLogger(__name__)

RELOAD = "reload"
PROGRAM_MOD = "programMod"
FILE_MOD = "fileMod"

KEEPALIVE_INTERVAL = 15.0


def encode_event(event_type: str, data: Any = None) -> str:
    text = json.dumps({"type": event_type, "data": data}, ensure_ascii=False)
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def frame(payload: str) -> str:
    return f"data: {payload}\n\n"


def decode_event(text: str) -> Tuple[str, Any]:
    """Decode a frame or a bare payload back into ``(type, data)``."""
    payload = text.strip()
    if payload.startswith("data:"):
        payload = payload[len("data:"):].strip()

    event = json.loads(base64.b64decode(payload).decode("utf-8"))
    return event["type"], event.get("data")


class QueueStream:
    """Output stream of one SSE response.

    ``write`` is called by whatever thread broadcasts; the HTTP worker
    serving the response iterates the stream and yields the frames.
    """

    def __init__(self, keepalive: float = KEEPALIVE_INTERVAL):
        self.keepalive = keepalive
        self.closed = False
        self._frames: "queue.Queue[Optional[str]]" = queue.Queue()

    def write(self, text: str):
        if self.closed:
            raise TransportError("Stream is closed")
        self._frames.put(text)

    def close(self):
        if not self.closed:
            self.closed = True
            self._frames.put(None)

    def __iter__(self) -> Iterator[str]:
        while True:
            try:
                text = self._frames.get(timeout=self.keepalive)
            except queue.Empty:
                if self.closed:
                    break
                # Comment line; lets the server notice clients that went away
                yield ": keep-alive\n\n"
                continue

            if text is None:
                break
            yield text


class Connection:
    """Handle for one subscribed stream."""

    def __init__(self, stream):
        self.stream = stream

    @property
    def closed(self) -> bool:
        return bool(getattr(self.stream, "closed", False))

    def send(self, text: str):
        try:
            self.stream.write(text)
        except (OSError, ValueError) as e:
            raise TransportError(str(e)) from e

    def close(self):
        close = getattr(self.stream, "close", None)
        if close is not None:
            close()


class EventChannel:
    """Set of live connections that events are broadcast to."""

    def __init__(self):
        self._connections: Set[Connection] = set()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)

    @property
    def connections(self) -> List[Connection]:
        with self._lock:
            return list(self._connections)

    def subscribe(self, stream) -> Connection:
        connection = Connection(stream)
        with self._lock:
            self._connections.add(connection)
        logger.debug("Viewer connected (%d open)", len(self))
        return connection

    def unsubscribe(self, connection: Connection):
        with self._lock:
            self._connections.discard(connection)
        logger.debug("Viewer disconnected (%d open)", len(self))

    def broadcast(self, event_type: str, data: Any = None) -> int:
        """Send an event to every open connection; returns how many got it."""
        text = frame(encode_event(event_type, data))
        sent = 0

        for connection in self.connections:
            if connection.closed:
                self.unsubscribe(connection)
                continue

            try:
                connection.send(text)
            except TransportError as e:
                logger.info("Dropping viewer connection: %s", e)
                self.unsubscribe(connection)
                continue

            sent += 1

        logger.debug("Sent '%s' to %d viewer(s)", event_type, sent)
        return sent

    def close(self):
        """End every connection."""
        for connection in self.connections:
            connection.close()
            self.unsubscribe(connection)
