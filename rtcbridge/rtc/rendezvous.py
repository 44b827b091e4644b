"""
Primitives bridging the media engine's callback threads to blocking request
handlers.
"""

from __future__ import annotations

import logging
import queue
import threading
from typing import Callable, Generic, List, Optional, TypeVar

from ..errors import NegotiationTimeout
from .webrtc import IceCandidate

LOG = logging.getLogger(__name__)

T = TypeVar("T")

_CLOSED = object()


class Rendezvous(Generic[T]):
    """
    One-shot hand-off of an asynchronous completion to a single waiter.

    Only the first :meth:`resolve` or :meth:`reject` takes effect; later
    attempts return ``False`` and are otherwise ignored.
    """

    def __init__(self, label: str = "completion") -> None:
        self.label = label
        self._lock = threading.Lock()
        self._event = threading.Event()
        self._value: Optional[T] = None
        self._error: Optional[BaseException] = None
        self._callbacks: List[Callable[["Rendezvous[T]"], None]] = []

    @property
    def done(self) -> bool:
        return self._event.is_set()

    def resolve(self, value: T) -> bool:
        return self._complete(value, None)

    def reject(self, error: BaseException) -> bool:
        return self._complete(None, error)

    def _complete(self, value: Optional[T], error: Optional[BaseException]) -> bool:
        with self._lock:
            if self._event.is_set():
                LOG.debug("Ignoring duplicate completion of %s", self.label)
                return False
            self._value = value
            self._error = error
            self._event.set()
            callbacks = list(self._callbacks)
            self._callbacks.clear()
        for callback in callbacks:
            self._invoke(callback)
        return True

    def _invoke(self, callback: Callable[["Rendezvous[T]"], None]) -> None:
        try:
            callback(self)
        except Exception:  # pragma: no cover - callbacks run on engine threads
            LOG.exception("Completion callback for %s failed.", self.label)

    def add_done_callback(self, callback: Callable[["Rendezvous[T]"], None]) -> None:
        """Run ``callback`` once completed; immediately if already done."""

        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        self._invoke(callback)

    def result(self) -> T:
        """Return the value of a completed rendezvous, raising its error if rejected."""

        if not self._event.is_set():
            raise RuntimeError(f"{self.label} has not completed")
        if self._error is not None:
            raise self._error
        return self._value  # type: ignore[return-value]

    def wait(self, timeout: float) -> T:
        """Block for at most ``timeout`` seconds and return the completed value."""

        if not self._event.wait(max(0.0, float(timeout))):
            raise NegotiationTimeout(f"timed out after {timeout:.2f}s waiting for {self.label}")
        return self.result()


class CandidateChannel:
    """
    Multi-producer, single-consumer queue of locally gathered candidates.

    The engine's discovery callbacks :meth:`put`; the negotiation that owns the
    channel drains it with :meth:`gather`.
    """

    def __init__(self) -> None:
        self._queue: "queue.SimpleQueue[object]" = queue.SimpleQueue()
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def put(self, candidate: IceCandidate) -> bool:
        if self._closed.is_set():
            LOG.debug("Could not send ice candidate. Receiver closed?")
            return False
        self._queue.put(candidate)
        return True

    def close(self) -> None:
        if not self._closed.is_set():
            self._closed.set()
            self._queue.put(_CLOSED)

    def gather(self, max_items: int, quiescence: float) -> List[IceCandidate]:
        """
        Collect candidates until ``max_items`` have arrived or none has arrived
        for ``quiescence`` seconds, whichever happens first.
        """

        received: List[IceCandidate] = []
        limit = max(1, int(max_items))
        timeout = max(0.0, float(quiescence))
        while len(received) < limit:
            try:
                item = self._queue.get(timeout=timeout)
            except queue.Empty:
                break
            if item is _CLOSED:
                break
            received.append(item)  # type: ignore[arg-type]
        return received


__all__ = ["CandidateChannel", "Rendezvous"]
