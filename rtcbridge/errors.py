"""
Error taxonomy shared by the negotiation core and the API layer.
"""

from __future__ import annotations


class BridgeError(RuntimeError):
    """Base class for negotiation related errors."""


class ConfigError(BridgeError):
    """Raised when a configuration profile cannot be resolved."""


class MalformedSdp(BridgeError, ValueError):
    """Raised when a session description fails strict grammar validation."""

    def __init__(self, message: str, line_number: int | None = None) -> None:
        if line_number is not None:
            message = f"line {line_number}: {message}"
        super().__init__(message)
        self.line_number = line_number


class MalformedCandidate(BridgeError, ValueError):
    """Raised when an ICE candidate attribute cannot be translated."""


class NoActiveSession(BridgeError):
    """Raised when an operation requires a session that does not exist."""


class EngineNegotiationFailure(BridgeError):
    """Raised when the media engine fails to produce an offer or answer."""


class EngineUnavailable(EngineNegotiationFailure):
    """Raised when the media engine runtime cannot be started."""


class NegotiationTimeout(BridgeError, TimeoutError):
    """Raised when a bounded wait on the media engine is exceeded."""


class SessionSuperseded(BridgeError):
    """Raised when a negotiation finishes after its session was replaced."""


__all__ = [
    "BridgeError",
    "ConfigError",
    "EngineNegotiationFailure",
    "EngineUnavailable",
    "MalformedCandidate",
    "MalformedSdp",
    "NegotiationTimeout",
    "NoActiveSession",
    "SessionSuperseded",
]
