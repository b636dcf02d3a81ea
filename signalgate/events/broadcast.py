from __future__ import annotations

import json
import logging
import queue
import threading
from typing import Any, Dict, Iterator, List

log = logging.getLogger("signalgate.broadcast")

# queued in place of frames once a subscriber is dropped
_CLOSED = object()


def sse_frame(data: Dict[str, Any]) -> str:
    return f"data: {json.dumps(data, ensure_ascii=False, default=str)}\n\n"


class Broadcaster:
    """
    Server-Sent Events fan-out. Each subscriber gets its own bounded queue;
    a subscriber whose queue is full is dropped instead of blocking publish().
    """

    def __init__(self, max_queue: int = 100, keepalive_seconds: float = 15.0):
        self.max_queue = max_queue
        self.keepalive_seconds = keepalive_seconds
        self._lock = threading.Lock()
        self._clients: List[queue.Queue] = []

    @property
    def client_count(self) -> int:
        with self._lock:
            return len(self._clients)

    def subscribe(self) -> queue.Queue:
        q: queue.Queue = queue.Queue(maxsize=self.max_queue)
        with self._lock:
            self._clients.append(q)
            total = len(self._clients)
        log.info("new SSE client connected. Total: %s", total)
        return q

    def unsubscribe(self, q: queue.Queue) -> None:
        with self._lock:
            if q in self._clients:
                self._clients.remove(q)
            total = len(self._clients)
        log.info("SSE client disconnected. Total: %s", total)

    def _close(self, q: queue.Queue) -> None:
        """Discard pending frames and leave only the close marker."""
        while True:
            try:
                q.get_nowait()
            except queue.Empty:
                break
        try:
            q.put_nowait(_CLOSED)
        except queue.Full:
            pass  # stream() also ends on its next keepalive check

    def _is_subscribed(self, q: queue.Queue) -> bool:
        with self._lock:
            return q in self._clients

    def publish(self, data: Dict[str, Any]) -> int:
        """Queue one event for every client. Returns how many received it."""
        frame = sse_frame(data)
        with self._lock:
            clients = list(self._clients)

        delivered = 0
        for q in clients:
            try:
                q.put_nowait(frame)
                delivered += 1
            except queue.Full:
                log.warning("SSE client too slow; dropping it")
                self.unsubscribe(q)
                self._close(q)
        return delivered

    def stream(self, q: queue.Queue) -> Iterator[str]:
        """
        Blocking frame iterator for one subscriber (runs in a worker thread).
        Ends once the subscriber has been dropped.
        """
        try:
            yield "\n"
            while True:
                try:
                    item = q.get(timeout=self.keepalive_seconds)
                except queue.Empty:
                    if not self._is_subscribed(q):
                        return
                    yield ": keepalive\n\n"
                    continue
                if item is _CLOSED:
                    return
                yield item
        finally:
            self.unsubscribe(q)
