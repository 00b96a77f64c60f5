"""
Unit tests for the configuration layer.
"""

import json

import pytest

from miio_protocol.config import (
    ConfigContext,
    DeviceConfig,
    LiteralTokenConfig,
    KeyringTokenConfig,
    TokenConfig,
)
from miio_protocol.config import keyring_token
from miio_protocol.token import Token

from fakes import TOKEN, TOKEN_HEX, FakeTransport


@pytest.fixture
def fake_keyring(monkeypatch):
    """Replaces the system keyring with a dict keyed by (service, key)."""
    store = {}

    def get_password(service, key):
        return store.get((service, key))

    def set_password(service, key, value):
        store[(service, key)] = value

    def delete_password(service, key):
        del store[(service, key)]

    monkeypatch.setattr(keyring_token.keyring, "get_password", get_password)
    monkeypatch.setattr(keyring_token.keyring, "set_password", set_password)
    monkeypatch.setattr(keyring_token.keyring, "delete_password", delete_password)
    return store


class TestTokenConfig:
    """Tests for token sources."""

    def test_literal_token_from_environment(self):
        ctx = ConfigContext(os_environ={"MIIO_TOKEN": TOKEN_HEX})
        cfg = ctx.load_json_data(
            {"cfg_class": "LiteralTokenConfig", "data": {"token": "${env:MIIO_TOKEN}"}},
            required_type=TokenConfig,
          )
        assert isinstance(cfg, LiteralTokenConfig)
        assert cfg.get_token() == TOKEN
        assert cfg.token_exists()

    def test_keyring_round_trip(self, fake_keyring):
        cfg = KeyringTokenConfig(service="svc", key="lamp")
        assert not cfg.token_exists()
        cfg.set_token(TOKEN)
        assert fake_keyring[("svc", "lamp")] == TOKEN_HEX
        assert cfg.get_token() == TOKEN
        cfg.delete_token()
        with pytest.raises(KeyError):
            cfg.get_token()

    def test_keyring_falls_back_to_default(self, fake_keyring):
        ctx = ConfigContext(os_environ={})
        cfg = ctx.load_json_data({
            "cfg_class": "KeyringTokenConfig",
            "data": {
                "key": "lamp",
                "default_token_cfg": {"cfg_class": "LiteralTokenConfig", "data": {"token": TOKEN_HEX}},
            },
          })
        assert cfg.get_token() == TOKEN
        fake_keyring[(keyring_token.DEFAULT_KEYRING_SERVICE, "lamp")] = "ff" * 16
        assert cfg.get_token() == Token(b"\xff" * 16)

    def test_wrong_type_rejected(self):
        ctx = ConfigContext(os_environ={})
        with pytest.raises(RuntimeError):
            ctx.load_json_data({"cfg_class": "DeviceConfig", "data": {}}, required_type=TokenConfig)

    def test_newer_version_rejected(self):
        ctx = ConfigContext(os_environ={})
        with pytest.raises(RuntimeError):
            ctx.load_json_data({"version": "99.0.0", "cfg_class": "DeviceConfig", "data": {}})


class TestDeviceConfig:
    """Tests for device connection settings."""

    def test_defaults(self):
        cfg = ConfigContext(os_environ={}).load_json_data({"cfg_class": "DeviceConfig"}, required_type=DeviceConfig)
        assert cfg.address is None
        assert cfg.models is None
        assert cfg.timeout == 1000
        assert cfg.retries == 0
        assert cfg.get_token() is None

    def test_load_file(self, tmp_path):
        path = tmp_path / "lamp.json"
        path.write_text(json.dumps({
            "version": "1.0.0",
            "cfg_class": "DeviceConfig",
            "data": {
                "address": "${env:LAMP_IP}",
                "models": ["philips.light.sread1"],
                "timeout": "1500",
                "retries": 2,
                "token_cfg": {"cfg_class": "LiteralTokenConfig", "data": {"token": TOKEN_HEX}},
            },
          }))
        ctx = ConfigContext(os_environ={"LAMP_IP": "10.0.0.9"})
        cfg = ctx.load_file(str(path), required_type=DeviceConfig)
        assert cfg.config_file == str(path)
        assert cfg.address == "10.0.0.9"
        assert cfg.models == ["philips.light.sread1"]
        assert cfg.timeout == 1500
        assert cfg.retries == 2
        assert cfg.get_token() == TOKEN

    def test_create_session(self):
        cfg = ConfigContext(os_environ={}).load_json_data({
            "cfg_class": "DeviceConfig",
            "data": {"address": "10.0.0.9", "retries": 3, "token_cfg": {"cfg_class": "LiteralTokenConfig", "data": {"token": TOKEN_HEX}}},
          })
        transport = FakeTransport()
        with cfg.create_session(transport=transport, timeout=400) as session:
            assert session.address == "10.0.0.9"
            assert session.token == TOKEN
            assert session.retries == 3
            assert session.timeout == 400
        assert transport.closed

    def test_missing_keyring_token_is_discovered(self, fake_keyring):
        cfg = ConfigContext(os_environ={}).load_json_data({
            "cfg_class": "DeviceConfig",
            "data": {"token_cfg": {"cfg_class": "KeyringTokenConfig", "data": {"key": "lamp"}}},
          })
        assert isinstance(cfg.token_cfg, KeyringTokenConfig)
        assert cfg.get_token() is None


class TestDeviceProfiles:
    """Tests for named device profiles."""

    def test_save_and_load(self, tmp_path, fake_keyring):
        fake_keyring[("miio_protocol", "desk-lamp")] = TOKEN_HEX
        ctx = ConfigContext(os_environ={"MIIO_CONFIG_DIR": str(tmp_path)})
        data = DeviceConfig.make_profile_data(
            "192.168.1.20",
            models={"philips.light.sread1"},
            retries=1,
            keyring_key="desk-lamp",
          )
        pathname = ctx.save_device_profile("desk-lamp", data)
        assert pathname == str(tmp_path / "devices" / "desk-lamp.json")

        cfg = ctx.load_device_profile("desk-lamp")
        assert cfg.address == "192.168.1.20"
        assert cfg.models == ["philips.light.sread1"]
        assert cfg.retries == 1
        assert cfg.get_token() == TOKEN

    def test_invalid_profile_name(self, tmp_path):
        ctx = ConfigContext(os_environ={"MIIO_CONFIG_DIR": str(tmp_path)})
        with pytest.raises(ValueError):
            ctx.device_profile_file("../escape")

    def test_undefined_variable(self):
        ctx = ConfigContext(os_environ={})
        with pytest.raises(KeyError):
            ctx.load_json_data({"cfg_class": "DeviceConfig", "data": {"address": "${env:NOPE}"}})
