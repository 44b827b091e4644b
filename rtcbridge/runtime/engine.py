"""
Media engine adapter interface consumed by the negotiation core.

Every engine operation completes asynchronously.  Offer/answer creation hands
back a :class:`~rtcbridge.rtc.Rendezvous`; description setters and remote
candidates are fire-and-forget.  Everything else the engine wants to tell the
core arrives as an event on the subscription API::

    ice-candidate        {"media_line_index": int, "candidate": str}
    negotiation-needed   {}
    new-transceiver      {"media_line_index": int}
    local-description    {}
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, Optional

from ..rtc.rendezvous import Rendezvous
from ..rtc.webrtc import SessionDescription

LOG = logging.getLogger(__name__)

EVENT_ICE_CANDIDATE = "ice-candidate"
EVENT_NEGOTIATION_NEEDED = "negotiation-needed"
EVENT_NEW_TRANSCEIVER = "new-transceiver"
EVENT_LOCAL_DESCRIPTION = "local-description"

EngineObserver = Callable[["MediaEngine", str, Dict[str, object]], None]


class MediaEngine:
    """
    Base class for media engine adapters.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._observer_counter = 0
        self._observers: Dict[int, EngineObserver] = {}

    @property
    def is_available(self) -> bool:
        return True

    # ------------------------------------------------------------------ lifecycle

    def start(self) -> None:
        """Bring up the backing media pipeline."""

    def stop(self) -> None:
        """
        Tear down backing resources.  Subclasses should override when required.
        """

    # ------------------------------------------------------------------ operations

    def create_offer(self) -> Rendezvous[SessionDescription]:
        raise NotImplementedError

    def create_answer(self) -> Rendezvous[SessionDescription]:
        raise NotImplementedError

    def set_local_description(self, description: SessionDescription) -> None:
        raise NotImplementedError

    def set_remote_description(self, description: SessionDescription) -> None:
        raise NotImplementedError

    def get_local_description(self) -> Optional[SessionDescription]:
        """Return the local description, or ``None`` while it is not yet set."""

        raise NotImplementedError

    def add_remote_candidate(self, media_line_index: int, candidate_text: str) -> None:
        raise NotImplementedError

    # ------------------------------------------------------------------ events

    def subscribe(self, callback: EngineObserver) -> int:
        if not callable(callback):
            raise TypeError("callback must be callable")
        with self._lock:
            self._observer_counter += 1
            token = self._observer_counter
            self._observers[token] = callback
        return token

    def unsubscribe(self, token: int) -> None:
        with self._lock:
            self._observers.pop(token, None)

    def _emit(self, event: str, payload: Optional[Dict[str, object]] = None) -> None:
        with self._lock:
            observers = dict(self._observers)
        for token, callback in observers.items():
            try:
                callback(self, event, dict(payload or {}))
            except Exception:  # pragma: no cover - observer failures must not reach the engine
                LOG.exception("Engine observer %s failed on %s.", token, event)


EngineFactory = Callable[[], MediaEngine]


__all__ = [
    "EVENT_ICE_CANDIDATE",
    "EVENT_LOCAL_DESCRIPTION",
    "EVENT_NEGOTIATION_NEEDED",
    "EVENT_NEW_TRANSCEIVER",
    "EngineFactory",
    "EngineObserver",
    "MediaEngine",
]
