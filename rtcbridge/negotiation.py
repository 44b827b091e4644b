"""
Offer/answer orchestration against an asynchronous media engine.

Request handlers call into :class:`Negotiator` from worker threads and block
until a result is ready.  The engine completes work on its own threads; those
completions reach the waiting request through a one-shot
:class:`~rtcbridge.rtc.Rendezvous`, the local-description change
notification, or the session's :class:`~rtcbridge.rtc.CandidateChannel`.
Each of the three waits is bounded by :class:`NegotiationSettings`.

Offer path::

    Idle -> OfferRequested -> AwaitingLocalDescription -> GatheringCandidates -> OfferReady

Answer path::

    Idle -> RemoteOfferApplied -> AnswerRequested -> AwaitingLocalDescription
         -> GatheringCandidates -> AnswerReady

Any failure moves the session to ``Failed`` and discards it.  Failed attempts
are never retried automatically.
"""

from __future__ import annotations

import contextlib
import functools
import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional

from .config import NegotiationSettings
from .errors import (
    BridgeError,
    EngineNegotiationFailure,
    EngineUnavailable,
    MalformedCandidate,
    MalformedSdp,
    NegotiationTimeout,
    NoActiveSession,
    SessionSuperseded,
)
from .rtc.rendezvous import Rendezvous
from .rtc.webrtc import IceCandidate, SdpType, SessionDescription
from .runtime.engine import (
    EVENT_ICE_CANDIDATE,
    EVENT_LOCAL_DESCRIPTION,
    EVENT_NEGOTIATION_NEEDED,
    EVENT_NEW_TRANSCEIVER,
    EngineFactory,
    MediaEngine,
)
from .sdp.document import extract_candidates, inject_candidates, parse_sdp
from .session import NegotiationPhase, Session, SessionRegistry

LOG = logging.getLogger(__name__)


@dataclass(frozen=True)
class NegotiationResult:
    """A finished offer or answer, candidates already merged in."""

    session_id: str
    type: SdpType
    sdp: str
    candidate_count: int


@dataclass(frozen=True)
class Ack:
    """
    Outcome of a fire-and-forget request.

    ``applied`` is false when nothing reached the engine; ``error`` says why.
    """

    applied: bool
    session_id: Optional[str] = None
    error: Optional[BridgeError] = None

    @property
    def detail(self) -> Optional[str]:
        return str(self.error) if self.error is not None else None


class Negotiator:
    """
    Drive offer and answer flows for the single active session.
    """

    def __init__(
        self,
        engine_factory: EngineFactory,
        *,
        registry: Optional[SessionRegistry] = None,
        settings: Optional[NegotiationSettings] = None,
        monotonic: Optional[Callable[[], float]] = None,
    ) -> None:
        self.engine_factory = engine_factory
        self.registry = registry if registry is not None else SessionRegistry()
        self.settings = settings or NegotiationSettings()
        self._monotonic = monotonic if monotonic is not None else time.monotonic

    # ------------------------------------------------------------------ public API

    def request_offer(self) -> NegotiationResult:
        """Start a new session, replacing any existing one, and return its offer."""

        LOG.info("Receiver requested sdp offer")
        session = self._open_session()
        with self._negotiating(session):
            session.transition(NegotiationPhase.OFFER_REQUESTED)
            self._start_engine(session)
            offer = self._await_created(session, session.engine.create_offer())
            session.engine.set_local_description(offer)
            local = self._await_local_description(session)
            candidates = self._gather(session)
            return self._finish(session, local, candidates, NegotiationPhase.OFFER_READY)

    def answer_offer(self, raw_offer: str) -> NegotiationResult:
        """
        Apply a complete remote offer to a new session and return the answer.

        The offer is validated before any engine exists; candidates embedded in
        it are applied to the bundled transport.
        """

        LOG.info("Received remote offer (%s bytes)", len(raw_offer or ""))
        parse_sdp(raw_offer)
        remote_candidates = extract_candidates(raw_offer)

        session = self._open_session()
        with self._negotiating(session):
            self._start_engine(session)
            session.engine.set_remote_description(SessionDescription(SdpType.OFFER, raw_offer))
            session.remote_description = raw_offer
            self._apply_remote_candidates(session, remote_candidates)
            session.transition(NegotiationPhase.REMOTE_OFFER_APPLIED)

            session.transition(NegotiationPhase.ANSWER_REQUESTED)
            answer = self._await_created(session, session.engine.create_answer())
            session.engine.set_local_description(answer)
            local = self._await_local_description(session)
            candidates = self._gather(session)
            return self._finish(session, local, candidates, NegotiationPhase.ANSWER_READY)

    def provide_answer(self, raw_answer: str, *, session_id: Optional[str] = None) -> Ack:
        """
        Apply a remote answer to the session that produced the offer.

        Raises :class:`MalformedSdp` before anything reaches the engine; a missing
        session is reported in the returned :class:`Ack`.
        """

        LOG.info("Received answer for video receiver (%s bytes)", len(raw_answer or ""))
        parse_sdp(raw_answer)
        remote_candidates = extract_candidates(raw_answer)

        def _apply(session: Session) -> Ack:
            with self._engine_errors():
                session.engine.set_remote_description(SessionDescription(SdpType.ANSWER, raw_answer))
                session.remote_description = raw_answer
                self._apply_remote_candidates(session, remote_candidates)
            session.transition(NegotiationPhase.REMOTE_ANSWER_APPLIED)
            return Ack(applied=True, session_id=session.session_id)

        try:
            return self.registry.with_current(_apply, session_id=session_id)
        except NoActiveSession as exc:
            LOG.warning("Ignoring remote answer: %s", exc)
            return Ack(applied=False, error=exc)

    def add_ice_candidate(
        self,
        media_line_index: int,
        candidate_text: str,
        *,
        session_id: Optional[str] = None,
    ) -> Ack:
        """
        Hand a trickled remote candidate to the engine verbatim.

        Only texts that cannot be a single attribute value are refused.
        """

        LOG.info("Received ice candidate.: %s, %s", media_line_index, candidate_text)
        text = (candidate_text or "").strip()
        if int(media_line_index) < 0:
            return Ack(applied=False, error=MalformedCandidate("media line index must be non-negative"))
        if not text or any(char in text for char in "\r\n\x00"):
            return Ack(applied=False, error=MalformedCandidate("candidate must be a single line"))

        def _apply(session: Session) -> Ack:
            with self._engine_errors():
                session.engine.add_remote_candidate(int(media_line_index), text)
            session.remote_candidates.append(IceCandidate(int(media_line_index), text))
            return Ack(applied=True, session_id=session.session_id)

        try:
            return self.registry.with_current(_apply, session_id=session_id)
        except NoActiveSession as exc:
            LOG.warning("Ignoring ice candidate: %s", exc)
            return Ack(applied=False, error=exc)

    def current_session(self) -> Optional[Session]:
        return self.registry.current()

    def shutdown(self) -> None:
        self.registry.clear()

    # ------------------------------------------------------------------ flow helpers

    def _open_session(self) -> Session:
        try:
            engine = self.engine_factory()
        except BridgeError:
            raise
        except Exception as exc:
            raise EngineUnavailable(f"Could not create media engine: {exc}") from exc
        session = Session(engine)
        session.subscription = engine.subscribe(functools.partial(self._on_engine_event, session))
        self.registry.replace(session)
        session.logger.info("Session opened")
        return session

    @contextlib.contextmanager
    def _negotiating(self, session: Session) -> Iterator[None]:
        session.negotiating = True
        try:
            with self._engine_errors():
                yield
        except BridgeError as exc:
            superseded = not self.registry.is_current(session)
            session.fail(exc)
            if superseded:
                session.logger.warning("Discarding result of superseded session: %s", exc)
                if isinstance(exc, SessionSuperseded):
                    raise
                raise SessionSuperseded(f"session {session.session_id} was replaced") from exc
            session.logger.warning("Negotiation failed: %s", exc)
            self.registry.discard(session)
            raise
        finally:
            session.negotiating = False

    @contextlib.contextmanager
    def _engine_errors(self) -> Iterator[None]:
        try:
            yield
        except BridgeError:
            raise
        except Exception as exc:
            LOG.exception("Media engine raised during negotiation.")
            raise EngineNegotiationFailure(str(exc)) from exc

    def _start_engine(self, session: Session) -> None:
        session.engine.start()

    def _await_created(
        self, session: Session, rendezvous: Rendezvous[SessionDescription]
    ) -> SessionDescription:
        description = rendezvous.wait(self.settings.offer_timeout)
        session.logger.info("Engine produced %s", description.type.value)
        return description

    def _await_local_description(self, session: Session) -> SessionDescription:
        """
        Wait until the engine reports a non-empty local description.

        The read is eventually consistent: it is retried on every change
        notification and at least every ``description_poll_interval``.
        """

        session.transition(NegotiationPhase.AWAITING_LOCAL_DESCRIPTION)
        deadline = self._monotonic() + self.settings.description_timeout
        while True:
            if session.closed:
                raise SessionSuperseded(f"session {session.session_id} was replaced")
            local = session.engine.get_local_description()
            if local is not None and local.sdp.strip():
                return local
            remaining = deadline - self._monotonic()
            if remaining <= 0:
                raise NegotiationTimeout(
                    f"local description not set within {self.settings.description_timeout:.2f}s"
                )
            session.wait_description_changed(min(remaining, self.settings.description_poll_interval))

    def _gather(self, session: Session) -> List[IceCandidate]:
        session.transition(NegotiationPhase.GATHERING_CANDIDATES)
        candidates = session.candidates.gather(
            self.settings.gather_max_items, self.settings.gather_quiescence
        )
        session.local_candidates.extend(candidates)
        session.logger.info("Gathered %s local candidate(s)", len(candidates))
        return candidates

    def _finish(
        self,
        session: Session,
        local: SessionDescription,
        candidates: List[IceCandidate],
        ready: NegotiationPhase,
    ) -> NegotiationResult:
        try:
            document = parse_sdp(local.sdp)
        except MalformedSdp as exc:
            raise EngineNegotiationFailure(f"engine produced an invalid {local.type.value}: {exc}") from exc
        text = inject_candidates(document, candidates).serialize()

        if not self.registry.is_current(session):
            raise SessionSuperseded(f"session {session.session_id} was replaced")
        session.local_description = text
        session.transition(ready)
        return NegotiationResult(
            session_id=session.session_id,
            type=local.type,
            sdp=text,
            candidate_count=len(candidates),
        )

    def _apply_remote_candidates(self, session: Session, candidates: List[str]) -> None:
        # max-bundle: every stream shares the transport of the first media line.
        mline = self.settings.remote_candidate_mline
        for candidate in candidates:
            session.engine.add_remote_candidate(mline, candidate)
            session.remote_candidates.append(IceCandidate(mline, candidate))
        if candidates:
            session.logger.info("Applied %s remote candidate(s) from description", len(candidates))

    # ------------------------------------------------------------------ engine events

    def _on_engine_event(self, session: Session, engine: MediaEngine, event: str, payload: dict) -> None:
        if session.closed:
            session.logger.debug("Dropping %s from closed session", event)
            return

        if event == EVENT_ICE_CANDIDATE:
            candidate = IceCandidate(int(payload["media_line_index"]), str(payload["candidate"]))
            session.logger.debug(
                "Gathered local ice candidate. mlineindex=%s, candidate=%s",
                candidate.media_line_index,
                candidate.candidate_text,
            )
            session.candidates.put(candidate)
        elif event == EVENT_LOCAL_DESCRIPTION:
            session.notify_description_changed()
        elif event == EVENT_NEW_TRANSCEIVER:
            session.logger.info("New transceiver added; mlineindex = %s", payload.get("media_line_index"))
        elif event == EVENT_NEGOTIATION_NEEDED:
            if session.negotiating:
                session.logger.info("Negotiation needed during an explicit request; ignoring")
                return
            self._self_initiated_offer(session, engine)
        else:
            session.logger.debug("Unhandled engine event %s %s", event, payload)

    def _self_initiated_offer(self, session: Session, engine: MediaEngine) -> None:
        session.logger.info("Negotiation needed; creating offer")

        def _apply(rendezvous: Rendezvous[SessionDescription]) -> None:
            if session.closed:
                return
            try:
                offer = rendezvous.result()
                engine.set_local_description(offer)
            except BridgeError as exc:
                session.logger.warning("Could not automatically create offer: %s", exc)
                return
            session.logger.info("Setting local description from SDP Offer")

        try:
            engine.create_offer().add_done_callback(_apply)
        except Exception:  # pragma: no cover - runs on an engine thread
            session.logger.exception("Could not automatically create offer.")


__all__ = ["Ack", "NegotiationPhase", "NegotiationResult", "Negotiator"]
