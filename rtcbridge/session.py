"""
Session bookkeeping for the negotiation core.

A :class:`Session` pairs one media engine instance with the negotiation phase
it is in.  The :class:`SessionRegistry` is the only mutable shared state in
the core: every mutation and every read that leads to an engine mutation is
serialised through its lock.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from enum import Enum
from typing import Callable, Dict, List, Optional, TypeVar

from .errors import NoActiveSession
from .rtc.rendezvous import CandidateChannel
from .rtc.webrtc import IceCandidate
from .runtime.engine import MediaEngine

LOG = logging.getLogger(__name__)

T = TypeVar("T")


class NegotiationPhase(str, Enum):
    """Phases of the offer and answer state machines."""

    IDLE = "idle"
    OFFER_REQUESTED = "offer-requested"
    REMOTE_OFFER_APPLIED = "remote-offer-applied"
    ANSWER_REQUESTED = "answer-requested"
    AWAITING_LOCAL_DESCRIPTION = "awaiting-local-description"
    GATHERING_CANDIDATES = "gathering-candidates"
    OFFER_READY = "offer-ready"
    ANSWER_READY = "answer-ready"
    REMOTE_ANSWER_APPLIED = "remote-answer-applied"
    FAILED = "failed"
    CLOSED = "closed"


class Session:
    """
    One negotiation with one media engine instance.

    ``negotiating`` is true while an explicit offer or answer request is being
    served; engine-initiated renegotiation is only acted on outside of it.
    """

    def __init__(self, engine: MediaEngine, *, session_id: Optional[str] = None) -> None:
        self.session_id = session_id or uuid.uuid4().hex
        self.engine = engine
        self.candidates = CandidateChannel()
        self.created_at = time.time()
        self.negotiating = False
        self.subscription: Optional[int] = None
        self.local_description: Optional[str] = None
        self.remote_description: Optional[str] = None
        self.local_candidates: List[IceCandidate] = []
        self.remote_candidates: List[IceCandidate] = []
        self.error: Optional[str] = None
        self.logger = LOG.getChild(f"session.{self.session_id[:8]}")
        self._lock = threading.RLock()
        self._phase = NegotiationPhase.IDLE
        self._closed = False
        self._description_changed = threading.Event()

    @property
    def phase(self) -> NegotiationPhase:
        return self._phase

    @property
    def closed(self) -> bool:
        return self._closed

    def transition(self, phase: NegotiationPhase) -> None:
        with self._lock:
            if self._closed:
                return
            previous = self._phase
            self._phase = phase
        self.logger.info("Negotiation phase %s -> %s", previous.value, phase.value)

    def fail(self, error: BaseException) -> None:
        with self._lock:
            self.error = str(error)
        self.transition(NegotiationPhase.FAILED)

    def notify_description_changed(self) -> None:
        self._description_changed.set()

    def wait_description_changed(self, timeout: float) -> bool:
        changed = self._description_changed.wait(max(0.0, timeout))
        self._description_changed.clear()
        return changed

    def close(self) -> None:
        """Detach from the engine and tear it down.  Safe to call repeatedly."""

        with self._lock:
            if self._closed:
                return
            self._phase = NegotiationPhase.CLOSED
            self._closed = True
            subscription = self.subscription
            self.subscription = None
        self.candidates.close()
        self._description_changed.set()
        if subscription is not None:
            self.engine.unsubscribe(subscription)
        try:
            self.engine.stop()
        except Exception:  # pragma: no cover - engine teardown is best-effort
            self.logger.exception("Failed to stop media engine cleanly.")
        self.logger.info("Session closed")

    def to_dict(self) -> dict:
        return {
            "sessionId": self.session_id,
            "phase": self._phase.value,
            "createdAt": self.created_at,
            "localDescription": self.local_description,
            "remoteDescription": self.remote_description,
            "localCandidates": len(self.local_candidates),
            "remoteCandidates": len(self.remote_candidates),
            "error": self.error,
        }


class SessionRegistry:
    """
    Holds the active session, keyed by session id.

    Only one session is kept today: :meth:`replace` evicts every other one.
    Evicted sessions are closed after the lock has been released.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._sessions: Dict[str, Session] = {}
        self._current_id: Optional[str] = None

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def replace(self, session: Session) -> List[Session]:
        with self._lock:
            evicted = [item for item in self._sessions.values() if item is not session]
            self._sessions = {session.session_id: session}
            self._current_id = session.session_id
        for previous in evicted:
            LOG.info("Discarding session %s in favour of %s", previous.session_id, session.session_id)
            previous.close()
        return evicted

    def current(self) -> Optional[Session]:
        with self._lock:
            if self._current_id is None:
                return None
            return self._sessions.get(self._current_id)

    def get(self, session_id: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(session_id)

    def is_current(self, session: Session) -> bool:
        with self._lock:
            return self._current_id == session.session_id and not session.closed

    def with_current(self, fn: Callable[[Session], T], *, session_id: Optional[str] = None) -> T:
        """
        Run ``fn`` against the active session while holding the registry lock.

        Raises :class:`NoActiveSession` when there is none, or when
        ``session_id`` is given and names a different session.
        """

        with self._lock:
            session = self._sessions.get(self._current_id) if self._current_id else None
            if session is None or session.closed:
                raise NoActiveSession("no active session")
            if session_id is not None and session_id != session.session_id:
                raise NoActiveSession(f"session {session_id} is not active")
            return fn(session)

    def discard(self, session: Session) -> bool:
        with self._lock:
            removed = self._sessions.pop(session.session_id, None) is not None
            if self._current_id == session.session_id:
                self._current_id = None
        session.close()
        return removed

    def clear(self) -> None:
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions = {}
            self._current_id = None
        for session in sessions:
            session.close()


__all__ = ["NegotiationPhase", "Session", "SessionRegistry"]
