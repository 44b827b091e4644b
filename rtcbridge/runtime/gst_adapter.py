"""
GStreamer ``webrtcbin`` implementation of the media engine adapter.

The adapter owns one GstPipeline built from a gst-launch description that must
contain an element named ``webrtcbin``.  webrtcbin signals arrive on GStreamer
streaming threads; they are translated into adapter events and never allowed
to raise back into the pipeline.  When the GStreamer runtime is not available
:meth:`GstWebRTCEngine.start` raises :class:`EngineUnavailable` so the request
that asked for a session fails cleanly instead of taking the process down.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Tuple

from ..errors import EngineNegotiationFailure, EngineUnavailable, MalformedSdp
from ..rtc.rendezvous import Rendezvous
from ..rtc.webrtc import SdpType, SessionDescription
from ..utils.gst import GST_IMPORT_ERROR, Gst, GstSdp, GstWebRTC, ensure_gst_initialised
from .engine import (
    EVENT_ICE_CANDIDATE,
    EVENT_LOCAL_DESCRIPTION,
    EVENT_NEGOTIATION_NEEDED,
    EVENT_NEW_TRANSCEIVER,
    MediaEngine,
)

LOG = logging.getLogger(__name__)

WEBRTCBIN_NAME = "webrtcbin"

DEFAULT_PIPELINE = (
    "videotestsrc pattern=ball is-live=true ! vp8enc deadline=1 ! rtpvp8pay pt=96 ! webrtcbin. "
    "audiotestsrc is-live=true ! opusenc ! rtpopuspay pt=97 ! webrtcbin. "
    "webrtcbin name=webrtcbin"
)

VIDEO_SINK_DESCRIPTION = "queue ! videoconvert ! videoscale ! fakesink"
AUDIO_SINK_DESCRIPTION = "queue ! audioconvert ! audioresample ! fakesink"


class GstWebRTCEngine(MediaEngine):
    """
    Drive a single ``webrtcbin`` through offer/answer negotiation.

    Incoming remote streams are decoded and dumped into fake sinks, which is
    enough to keep media flowing in both directions.
    """

    def __init__(
        self,
        pipeline_description: str = DEFAULT_PIPELINE,
        *,
        bundle_policy: str = "max-bundle",
        stun_server: Optional[str] = None,
    ) -> None:
        super().__init__()
        self.pipeline_description = pipeline_description
        self.bundle_policy = bundle_policy
        self.stun_server = stun_server
        self._pipeline: Optional["Gst.Pipeline"] = None
        self._webrtcbin: Optional["Gst.Element"] = None
        self._handlers: List[Tuple[Any, int]] = []

    @property
    def is_available(self) -> bool:
        return Gst is not None

    # ------------------------------------------------------------------ lifecycle

    def start(self) -> None:
        if Gst is None:
            raise EngineUnavailable(f"GStreamer runtime is not available ({GST_IMPORT_ERROR})")
        ensure_gst_initialised()

        with self._lock:
            if self._pipeline is not None:
                return
            try:
                pipeline = Gst.parse_launch(self.pipeline_description)
            except Exception as exc:
                raise EngineUnavailable(f"Could not create pipeline: {exc}") from exc

            webrtcbin = pipeline.get_by_name(WEBRTCBIN_NAME)
            if webrtcbin is None:
                raise EngineUnavailable(f"Could not find {WEBRTCBIN_NAME} element in pipeline")

            Gst.util_set_object_arg(webrtcbin, "bundle-policy", self.bundle_policy)
            if self.stun_server:
                webrtcbin.set_property("stun-server", self.stun_server)

            self._connect(webrtcbin, "on-ice-candidate", self._on_ice_candidate)
            self._connect(webrtcbin, "on-negotiation-needed", self._on_negotiation_needed)
            self._connect(webrtcbin, "on-new-transceiver", self._on_new_transceiver)
            self._connect(webrtcbin, "notify::local-description", self._on_local_description)
            self._connect(webrtcbin, "pad-added", self._on_incoming_stream)

            self._pipeline = pipeline
            self._webrtcbin = webrtcbin

            if pipeline.set_state(Gst.State.PLAYING) == Gst.StateChangeReturn.FAILURE:
                self._teardown_locked()
                raise EngineUnavailable("Couldn't set pipeline to Playing")
        LOG.info("Started webrtc pipeline.")

    def stop(self) -> None:
        with self._lock:
            self._teardown_locked()

    def _teardown_locked(self) -> None:
        for element, handler_id in self._handlers:
            try:
                element.disconnect(handler_id)
            except Exception:  # pragma: no cover - element may already be disposed
                LOG.debug("Failed to disconnect webrtcbin handler %s.", handler_id, exc_info=True)
        self._handlers.clear()
        if self._pipeline is not None:
            self._pipeline.set_state(Gst.State.NULL)
            LOG.info("Stopped webrtc pipeline.")
        self._pipeline = None
        self._webrtcbin = None

    def _connect(self, element: Any, signal: str, handler: Any) -> None:
        self._handlers.append((element, element.connect(signal, handler)))

    def _require_webrtcbin(self) -> "Gst.Element":
        webrtcbin = self._webrtcbin
        if webrtcbin is None:
            raise EngineNegotiationFailure("media engine has not been started")
        return webrtcbin

    # ------------------------------------------------------------------ operations

    def create_offer(self) -> Rendezvous[SessionDescription]:
        return self._create_description(SdpType.OFFER)

    def create_answer(self) -> Rendezvous[SessionDescription]:
        return self._create_description(SdpType.ANSWER)

    def _create_description(self, sdp_type: SdpType) -> Rendezvous[SessionDescription]:
        webrtcbin = self._require_webrtcbin()
        rendezvous: Rendezvous[SessionDescription] = Rendezvous(f"create-{sdp_type.value}")
        promise = Gst.Promise.new_with_change_func(self._on_description_created, rendezvous, sdp_type)
        webrtcbin.emit(f"create-{sdp_type.value}", None, promise)
        return rendezvous

    def _on_description_created(
        self,
        promise: "Gst.Promise",
        rendezvous: Rendezvous[SessionDescription],
        sdp_type: SdpType,
    ) -> None:
        try:
            if promise.wait() != Gst.PromiseResult.REPLIED:
                rendezvous.reject(EngineNegotiationFailure(f"create-{sdp_type.value} was not answered"))
                return
            reply = promise.get_reply()
            description = reply.get_value(sdp_type.value) if reply is not None else None
            if description is None:
                error = reply.get_value("error") if reply is not None and reply.has_field("error") else None
                rendezvous.reject(
                    EngineNegotiationFailure(f"webrtcbin failed to create {sdp_type.value}: {error}")
                )
                return
            raw = description.sdp.as_text()
            LOG.debug("Webrtcbin emitted %s %s", sdp_type.value, raw)
            rendezvous.resolve(SessionDescription(sdp_type, raw))
        except Exception as exc:  # pragma: no cover - runs on a GStreamer thread
            LOG.exception("Failed to read %s from webrtcbin.", sdp_type.value)
            rendezvous.reject(EngineNegotiationFailure(str(exc)))

    def set_local_description(self, description: SessionDescription) -> None:
        self._require_webrtcbin().emit(
            "set-local-description", self._to_gst_description(description), None
        )

    def set_remote_description(self, description: SessionDescription) -> None:
        self._require_webrtcbin().emit(
            "set-remote-description", self._to_gst_description(description), None
        )

    def get_local_description(self) -> Optional[SessionDescription]:
        local = self._require_webrtcbin().get_property("local-description")
        if local is None:
            return None
        if local.type == GstWebRTC.WebRTCSDPType.OFFER:
            sdp_type = SdpType.OFFER
        elif local.type == GstWebRTC.WebRTCSDPType.ANSWER:
            sdp_type = SdpType.ANSWER
        else:
            return None
        return SessionDescription(sdp_type, local.sdp.as_text())

    def add_remote_candidate(self, media_line_index: int, candidate_text: str) -> None:
        self._require_webrtcbin().emit("add-ice-candidate", int(media_line_index), candidate_text)

    @staticmethod
    def _to_gst_description(description: SessionDescription) -> "GstWebRTC.WebRTCSessionDescription":
        result, message = GstSdp.SDPMessage.new_from_text(description.sdp)
        if result != GstSdp.SDPResult.OK:
            raise MalformedSdp(f"GStreamer rejected the {description.type.value} ({result})")
        if description.type is SdpType.OFFER:
            gst_type = GstWebRTC.WebRTCSDPType.OFFER
        else:
            gst_type = GstWebRTC.WebRTCSDPType.ANSWER
        return GstWebRTC.WebRTCSessionDescription.new(gst_type, message)

    # ------------------------------------------------------------------ signal handlers

    def _on_ice_candidate(self, _webrtcbin: Any, mline_index: int, candidate: str) -> None:
        LOG.debug("Gathered local ice candidate. mlineindex=%s, candidate=%s", mline_index, candidate)
        self._emit(EVENT_ICE_CANDIDATE, {"media_line_index": int(mline_index), "candidate": candidate})

    def _on_negotiation_needed(self, webrtcbin: Any) -> None:
        LOG.info(
            "Negotiation needed. Has local %s, has remote %s",
            webrtcbin.get_property("local-description") is not None,
            webrtcbin.get_property("remote-description") is not None,
        )
        self._emit(EVENT_NEGOTIATION_NEEDED)

    def _on_new_transceiver(self, _webrtcbin: Any, transceiver: Any) -> None:
        self._emit(EVENT_NEW_TRANSCEIVER, {"media_line_index": transceiver.get_property("mlineindex")})

    def _on_local_description(self, _webrtcbin: Any, _pspec: Any) -> None:
        self._emit(EVENT_LOCAL_DESCRIPTION)

    def _on_incoming_stream(self, _webrtcbin: Any, pad: "Gst.Pad") -> None:
        # Only fires after ICE has connected.
        if pad.get_direction() != Gst.PadDirection.SRC:
            return
        pipeline = self._pipeline
        if pipeline is None:
            return
        try:
            decodebin = Gst.ElementFactory.make("decodebin", None)
            decodebin.connect("pad-added", self._on_decoded_stream)
            pipeline.add(decodebin)
            decodebin.sync_state_with_parent()
            pad.link(decodebin.get_static_pad("sink"))
            LOG.info("Connected to new pad %s", pad.get_name())
        except Exception:  # pragma: no cover - runs on a GStreamer thread
            LOG.exception("Could not decode incoming stream.")

    def _on_decoded_stream(self, _decodebin: Any, pad: "Gst.Pad") -> None:
        pipeline = self._pipeline
        if pipeline is None:
            return
        try:
            caps = pad.get_current_caps()
            name = caps.get_structure(0).get_name() if caps is not None else ""
            if name.startswith("video/"):
                description = VIDEO_SINK_DESCRIPTION
            elif name.startswith("audio/"):
                description = AUDIO_SINK_DESCRIPTION
            else:
                LOG.info("Unknown pad %s (%s), ignoring", pad.get_name(), name)
                return
            sink = Gst.parse_bin_from_description(description, True)
            pipeline.add(sink)
            sink.sync_state_with_parent()
            pad.link(sink.get_static_pad("sink"))
        except Exception:  # pragma: no cover - runs on a GStreamer thread
            LOG.exception("Could not add stream destination.")


__all__ = ["DEFAULT_PIPELINE", "GstWebRTCEngine"]
