import pytest
from pydantic import ValidationError

from relay.config import RelaySettings

_ENV_VARS = (
    "RELAY_CONFIG_FILE",
    "RELAY_GATEWAY_URL",
    "IC_WS_GATEWAY_URL",
    "RELAY_NETWORK_URL",
    "IC_NETWORK_URL",
    "RELAY_RECONNECT_AFTER_SECONDS",
    "RECONNECT_AFTER_SECONDS",
    "RELAY_LOG_LEVEL",
    "RELAY_ENDPOINT_ID",
    "RELAY_TRANSPORT",
)


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


def test_defaults():
    settings = RelaySettings()

    assert settings.reconnect_after_seconds == 45.0
    assert settings.transport == "websocket"
    assert settings.log_level == "INFO"
    assert settings.endpoint_id is None
    assert settings.config_path is None


def test_gateway_environment_aliases(monkeypatch):
    monkeypatch.setenv("IC_WS_GATEWAY_URL", "ws://gateway.example:9000")
    monkeypatch.setenv("IC_NETWORK_URL", "http://network.example:4943")
    monkeypatch.setenv("RECONNECT_AFTER_SECONDS", "12")

    settings = RelaySettings()

    assert settings.gateway_url.host == "gateway.example"
    assert settings.network_url.host == "network.example"
    assert settings.reconnect_after_seconds == 12.0


def test_log_level_is_normalised(monkeypatch):
    monkeypatch.setenv("RELAY_LOG_LEVEL", "debug")

    assert RelaySettings().log_level == "DEBUG"


def test_config_file_seeds_settings(monkeypatch, tmp_path):
    config = tmp_path / "relay.yaml"
    config.write_text("endpoint_id: bkyz2-fmaaa\nreconnect_after_seconds: 3\ntransport: dummy\n", encoding="utf-8")
    monkeypatch.setenv("RELAY_CONFIG_FILE", str(config))

    settings = RelaySettings()

    assert settings.endpoint_id == "bkyz2-fmaaa"
    assert settings.reconnect_after_seconds == 3.0
    assert settings.transport == "dummy"
    assert settings.config_path == config


def test_blank_endpoint_is_treated_as_unset():
    assert RelaySettings(endpoint_id="  ").endpoint_id is None


def test_negative_reconnect_delay_is_rejected():
    with pytest.raises(ValidationError):
        RelaySettings(reconnect_after_seconds=-1)


def test_non_mapping_config_file_is_rejected(monkeypatch, tmp_path):
    config = tmp_path / "relay.yaml"
    config.write_text("- just\n- a list\n", encoding="utf-8")
    monkeypatch.setenv("RELAY_CONFIG_FILE", str(config))

    with pytest.raises(ValueError, match="mapping"):
        RelaySettings()
