from __future__ import annotations

import pytest

from rtcbridge.config import ENV_PROFILE_VAR, BridgeConfig, NegotiationSettings, load_config
from rtcbridge.errors import ConfigError


def test_packaged_profiles_load() -> None:
    config = load_config("default")

    assert config.profile == "default"
    assert config.negotiation.gather_max_items == 16
    assert config.negotiation.description_timeout == 5.0
    assert config.engine.bundle_policy == "max-bundle"


def test_lan_profile_overrides_defaults() -> None:
    config = load_config("lan")

    assert config.host == "0.0.0.0"
    assert config.negotiation.gather_quiescence == 0.25
    assert config.negotiation.offer_timeout == 5.0
    assert config.engine.stun_server.startswith("stun://")


def test_custom_profile_file(tmp_path, monkeypatch) -> None:
    profiles = tmp_path / "profiles.yaml"
    profiles.write_text(
        "studio:\n"
        "  port: 9000\n"
        "  surprise: true\n"
        "  negotiation:\n"
        "    gather_max_items: 4\n"
        "    unknown_knob: 1\n",
        encoding="utf-8",
    )
    monkeypatch.setenv(ENV_PROFILE_VAR, "studio")

    config = load_config(path=profiles)

    assert config.profile == "studio"
    assert config.port == 9000
    assert config.negotiation.gather_max_items == 4
    assert not hasattr(config, "surprise")


def test_unknown_profile_is_rejected(tmp_path) -> None:
    profiles = tmp_path / "profiles.yaml"
    profiles.write_text("default: {}\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config("missing", profiles)


def test_invalid_yaml_is_rejected(tmp_path) -> None:
    profiles = tmp_path / "profiles.yaml"
    profiles.write_text("default: [unclosed\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config("default", profiles)


def test_missing_profile_file_falls_back_to_defaults(tmp_path) -> None:
    config = load_config("default", tmp_path / "absent.yaml")

    assert config == BridgeConfig()


def test_negotiation_settings_are_clamped() -> None:
    settings = NegotiationSettings(
        offer_timeout=-1,
        gather_max_items=0,
        gather_quiescence=-0.5,
        remote_candidate_mline=-3,
    )

    assert settings.offer_timeout > 0
    assert settings.gather_max_items == 1
    assert settings.gather_quiescence == 0.0
    assert settings.remote_candidate_mline == 0
