"""GStreamer runtime guard shared by the engine adapters."""

from __future__ import annotations

import logging
import threading

LOG = logging.getLogger(__name__)

_INIT_LOCK = threading.Lock()
_GST_INITIALISED = False

try:  # pragma: no cover - availability depends on host environment
    import gi  # type: ignore

    gi.require_version("Gst", "1.0")
    gi.require_version("GstSdp", "1.0")
    gi.require_version("GstWebRTC", "1.0")
    from gi.repository import Gst, GstSdp, GstWebRTC  # type: ignore
except (ImportError, ValueError) as exc:  # pragma: no cover
    Gst = None  # type: ignore[assignment]
    GstSdp = None  # type: ignore[assignment]
    GstWebRTC = None  # type: ignore[assignment]
    GST_IMPORT_ERROR: Exception | None = exc
else:  # pragma: no cover - executed only when GStreamer is present
    GST_IMPORT_ERROR = None


def gst_available() -> bool:
    return Gst is not None


def ensure_gst_initialised() -> None:
    """Call ``Gst.init`` once per process."""

    global _GST_INITIALISED
    if Gst is None:
        return
    with _INIT_LOCK:
        if _GST_INITIALISED:
            return
        Gst.init(None)
        _GST_INITIALISED = True
        LOG.info("Initialised GStreamer %s", Gst.version_string())


__all__ = ["GST_IMPORT_ERROR", "Gst", "GstSdp", "GstWebRTC", "ensure_gst_initialised", "gst_available"]
