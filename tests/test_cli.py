"""
Tests for the miio command-line tool.
"""

import json

import pytest

from miio_protocol import __version__
from miio_protocol.__main__ import run
from miio_protocol.config import keyring_token

from fakes import TOKEN, TOKEN_HEX, DEVICE_ADDRESS, FakeTransport, SimulatedDevice


@pytest.fixture
def fake_keyring(monkeypatch):
    store = {}
    monkeypatch.setattr(keyring_token.keyring, "get_password", lambda s, k: store.get((s, k)))
    monkeypatch.setattr(keyring_token.keyring, "set_password", lambda s, k, v: store.__setitem__((s, k), v))
    monkeypatch.setattr(keyring_token.keyring, "delete_password", lambda s, k: store.pop((s, k)))
    return store


class TestCli:
    """Tests for commands that do not touch the network."""

    def test_version(self, capsys):
        assert run(["version"]) == 0
        assert capsys.readouterr().out.strip() == __version__

    def test_command_required(self, capsys):
        assert run([]) == 1
        assert "A command is required" in capsys.readouterr().err

    def test_bad_option(self):
        assert run(["--log-level", "loud", "version"]) == 2

    def test_token_commands(self, fake_keyring, capsys):
        assert run(["--keyring-key", "lamp", "token", "set", TOKEN_HEX.upper()]) == 0
        assert fake_keyring[("miio_protocol", "lamp")] == TOKEN_HEX
        assert run(["--keyring-key", "lamp", "token", "get"]) == 0
        assert capsys.readouterr().out.strip() == TOKEN_HEX
        assert run(["--ip", "10.0.0.9", "--keyring-service", "other", "token", "set", TOKEN_HEX]) == 0
        assert ("other", "10.0.0.9") in fake_keyring
        assert run(["--keyring-key", "lamp", "token", "delete"]) == 0
        assert ("miio_protocol", "lamp") not in fake_keyring

    def test_token_requires_key(self, fake_keyring, capsys):
        assert run(["token", "get"]) == 1
        assert "miio: error:" in capsys.readouterr().err

    def test_missing_token_is_an_error(self, fake_keyring, capsys):
        assert run(["--keyring-key", "nothing", "token", "get"]) == 1
        assert "does not exist" in capsys.readouterr().err

    def test_send_rejects_scalar_params(self, capsys):
        assert run(["--ip", "10.0.0.9", "--token", TOKEN_HEX, "send", "get_prop", "5"]) == 1
        assert "PARAMS must be a JSON array or object" in capsys.readouterr().err


class TestCliWithDevice:
    """Tests for commands that talk to a simulated device."""

    @pytest.fixture
    def simulated(self, monkeypatch, tmp_path, fake_keyring):
        from miio_protocol import __main__ as cli_main
        from miio_protocol.config import device_cfg
        from miio_protocol.session import Session

        device = SimulatedDevice(advertised_token=TOKEN.raw, handlers={"get_prop": lambda params: ["on"]})

        def make_session(**kwargs):
            return Session(transport=FakeTransport(device.responder), **kwargs)

        monkeypatch.setattr(cli_main, "Session", make_session)
        monkeypatch.setattr(device_cfg, "Session", make_session)
        monkeypatch.setenv("MIIO_CONFIG_DIR", str(tmp_path))
        return device

    def test_send(self, simulated, capsys):
        assert run(["--ip", DEVICE_ADDRESS, "--token", TOKEN_HEX, "send", "get_prop", '["power"]']) == 0
        assert json.loads(capsys.readouterr().out) == ["on"]

    def test_discover_and_save_profile(self, simulated, fake_keyring, tmp_path, capsys):
        assert run(["--ip", DEVICE_ADDRESS, "--retries", "2", "discover", "--save", "lamp"]) == 0
        state = json.loads(capsys.readouterr().out)
        assert state["token"] == TOKEN_HEX
        assert fake_keyring[("miio_protocol", "lamp")] == TOKEN_HEX
        profile = json.loads((tmp_path / "devices" / "lamp.json").read_text())
        assert profile["cfg_class"] == "DeviceConfig"
        assert profile["data"]["address"] == DEVICE_ADDRESS
        assert profile["data"]["retries"] == 2
        assert TOKEN_HEX not in json.dumps(profile)

        assert run(["--device", "lamp", "send", "get_prop", '["power"]']) == 0
        assert json.loads(capsys.readouterr().out) == ["on"]
        assert run(["--device", "lamp", "token", "get"]) == 0
        assert capsys.readouterr().out.strip() == TOKEN_HEX

    def test_missing_profile(self, simulated, capsys):
        assert run(["--device", "nothing", "info"]) == 1
        assert "miio: error:" in capsys.readouterr().err
