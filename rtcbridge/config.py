"""
Configuration profiles for the negotiation bridge.

Profiles live in a YAML document keyed by profile name::

    default:
      negotiation:
        description_timeout: 5.0
        gather_max_items: 16
      engine:
        bundle_policy: max-bundle

Sections and keys that are omitted fall back to the dataclass defaults.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from .errors import ConfigError
from .runtime.gst_adapter import DEFAULT_PIPELINE

LOG = logging.getLogger(__name__)

CONFIG_DIR = Path(__file__).resolve().parent / "configs"
PROFILES_PATH = CONFIG_DIR / "profiles.yaml"

ENV_CONFIG_VAR = "RTCBRIDGE_CONFIG"
ENV_PROFILE_VAR = "RTCBRIDGE_PROFILE"


@dataclass
class NegotiationSettings:
    """Bounds on every wait the negotiation core performs."""

    offer_timeout: float = 5.0
    description_timeout: float = 5.0
    description_poll_interval: float = 0.05
    gather_max_items: int = 16
    gather_quiescence: float = 0.1
    remote_candidate_mline: int = 0

    def __post_init__(self) -> None:
        self.offer_timeout = max(0.01, float(self.offer_timeout))
        self.description_timeout = max(0.01, float(self.description_timeout))
        self.description_poll_interval = max(0.001, float(self.description_poll_interval))
        self.gather_max_items = max(1, int(self.gather_max_items))
        self.gather_quiescence = max(0.0, float(self.gather_quiescence))
        self.remote_candidate_mline = max(0, int(self.remote_candidate_mline))


@dataclass
class EngineSettings:
    pipeline: str = DEFAULT_PIPELINE
    bundle_policy: str = "max-bundle"
    stun_server: Optional[str] = None


@dataclass
class BridgeConfig:
    """Top level configuration resolved from a profile."""

    profile: str = "default"
    host: str = "127.0.0.1"
    port: int = 8080
    log_level: str = "INFO"
    static_dir: Optional[str] = None
    negotiation: NegotiationSettings = field(default_factory=NegotiationSettings)
    engine: EngineSettings = field(default_factory=EngineSettings)


def _known_keys(section: str, cls: type, payload: Dict[str, Any]) -> Dict[str, Any]:
    names = {item.name for item in fields(cls)}
    unknown = sorted(set(payload) - names)
    if unknown:
        LOG.warning("Ignoring unknown %s settings: %s", section, ", ".join(unknown))
    return {key: value for key, value in payload.items() if key in names}


def _section(payload: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = payload.get(key) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{key}' must be a mapping")
    return value


def read_profiles(path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    target = Path(path or os.environ.get(ENV_CONFIG_VAR) or PROFILES_PATH)
    try:
        with target.open("r", encoding="utf-8") as handle:
            profiles = yaml.safe_load(handle) or {}
    except FileNotFoundError:
        LOG.warning("Profile file %s not found; using built-in defaults.", target)
        return {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Could not parse {target}: {exc}") from exc
    if not isinstance(profiles, dict):
        raise ConfigError(f"{target} must contain a mapping of profiles")
    return profiles


def load_config(
    profile: Optional[str] = None,
    path: Optional[Union[str, Path]] = None,
) -> BridgeConfig:
    """Resolve ``profile`` (or ``$RTCBRIDGE_PROFILE``, or ``default``) into a config."""

    name = profile or os.environ.get(ENV_PROFILE_VAR) or "default"
    profiles = read_profiles(path)
    if not profiles and name == "default":
        return BridgeConfig()
    if name not in profiles:
        raise ConfigError(f"Unknown profile '{name}'")

    payload = profiles.get(name) or {}
    if not isinstance(payload, dict):
        raise ConfigError(f"Profile '{name}' must be a mapping")

    top_level = {
        key: value for key, value in payload.items() if key not in {"negotiation", "engine"}
    }
    top_level = _known_keys("profile", BridgeConfig, top_level)
    top_level.pop("profile", None)
    try:
        return BridgeConfig(
            profile=name,
            negotiation=NegotiationSettings(
                **_known_keys("negotiation", NegotiationSettings, _section(payload, "negotiation"))
            ),
            engine=EngineSettings(**_known_keys("engine", EngineSettings, _section(payload, "engine"))),
            **top_level,
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid settings in profile '{name}': {exc}") from exc


__all__ = [
    "BridgeConfig",
    "EngineSettings",
    "NegotiationSettings",
    "load_config",
    "read_profiles",
]
