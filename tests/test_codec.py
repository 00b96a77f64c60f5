"""
Unit tests for the miIO datagram codec.
"""

import json
import struct

import pytest

from miio_protocol.codec import MiioCodec, Response
from miio_protocol.token import Token
from miio_protocol.constants import PACKET_MAGIC, HEADER_LENGTH

from fakes import TOKEN, hello_reply


@pytest.fixture
def codec():
    return MiioCodec()


class TestHello:
    """Tests for the handshake datagram."""

    def test_hello_layout(self, codec):
        hello = codec.encode_hello()
        assert len(hello) == HEADER_LENGTH
        assert hello[:4] == bytes.fromhex("21310020")
        assert hello[4:] == b"\xff" * 28

    def test_hello_reply_envelope_only(self, codec):
        response = codec.decode(hello_reply(0x1234, 5678, TOKEN.raw))
        assert response.valid
        assert response.device_id == 0x1234
        assert response.device_timestamp == 5678
        assert response.token == TOKEN
        assert response.parameters is None

    def test_unknown_identity_decodes_as_sentinel(self, codec):
        response = codec.decode(hello_reply(0xFFFFFFFF, 0xFFFFFFFF, TOKEN.raw))
        assert response.valid
        assert response.device_id == -1
        assert response.device_timestamp == -1
        assert not response.has_identity


class TestCommandEncoding:
    """Tests for encoding commands and decoding replies."""

    def test_header_fields(self, codec):
        data = codec.encode(TOKEN, 0x01020304, 77, 5, "get_prop", ["power"])
        magic, length, unknown, device_id, stamp = struct.unpack_from(">HHIII", data)
        assert magic == PACKET_MAGIC
        assert length == len(data)
        assert unknown == 0
        assert device_id == 0x01020304
        assert stamp == 77
        # AES-CBC output is block aligned
        assert (len(data) - HEADER_LENGTH) % 16 == 0

    def test_payload_decrypts_to_command(self, codec):
        data = codec.encode(TOKEN, 1, 2, 42, "set_power", ["on"])
        response = codec.decode(data, TOKEN)
        assert response.valid
        assert json.loads(response.payload_text) == {"id": 42, "method": "set_power", "params": ["on"]}
        assert response.payload_sequence == 42

    def test_absent_params_sent_as_empty_array(self, codec):
        data = codec.encode(TOKEN, 1, 2, 3, "miIO.info", None)
        assert json.loads(codec.decode(data, TOKEN).payload_text)["params"] == []

    def test_result_becomes_parameters(self, codec):
        data = codec.encode_payload(TOKEN, 1, 2, '{"id": 9, "result": ["ok"]}')
        response = codec.decode(data, TOKEN)
        assert response.valid
        assert response.payload_sequence == 9
        assert response.parameters == ["ok"]

    def test_error_message_becomes_parameters(self, codec):
        data = codec.encode_payload(TOKEN, 1, 2, '{"id": 9, "error": {"code": -9999, "message": "unknown_method"}}')
        assert codec.decode(data, TOKEN).parameters == "unknown_method"

    def test_trailing_nul_is_ignored(self, codec):
        data = codec.encode_payload(TOKEN, 1, 2, '{"id": 1, "result": [1]}\x00')
        assert codec.decode(data, TOKEN).parameters == [1]


class TestFailClosed:
    """Malformed datagrams decode as invalid rather than raising."""

    def test_short_datagram(self, codec):
        assert not codec.decode(b"\x21\x31\x00", TOKEN).valid

    def test_wrong_magic(self, codec):
        data = bytearray(codec.encode(TOKEN, 1, 2, 3, "m", []))
        data[0] = 0x99
        assert not codec.decode(bytes(data), TOKEN).valid

    def test_declared_length_exceeds_data(self, codec):
        data = codec.encode(TOKEN, 1, 2, 3, "m", [])
        assert not codec.decode(data[:-16], TOKEN).valid

    def test_checksum_mismatch(self, codec):
        data = bytearray(codec.encode(TOKEN, 1, 2, 3, "m", []))
        data[20] ^= 0x01
        response = codec.decode(bytes(data), TOKEN)
        assert not response.valid
        assert response.device_id == 1

    def test_wrong_token(self, codec):
        data = codec.encode(TOKEN, 1, 2, 3, "m", [])
        other = Token("ffeeddccbbaa99887766554433221100")
        assert not codec.decode(data, other).valid

    def test_non_json_payload(self, codec):
        data = codec.encode_payload(TOKEN, 1, 2, "not json")
        response = codec.decode(data, TOKEN)
        assert not response.valid
        assert response.payload_text == "not json"


class TestToken:
    """Tests for the Token value type."""

    def test_hex_round_trip(self):
        assert Token("00112233445566778899AABBCCDDEEFF").hex == "00112233445566778899aabbccddeeff"

    def test_equality_by_value(self):
        assert Token(TOKEN.raw) == TOKEN
        assert hash(Token(TOKEN.raw)) == hash(TOKEN)

    @pytest.mark.parametrize("value", ["0011", "zz112233445566778899aabbccddeeff", b"\x00" * 15])
    def test_rejects_malformed(self, value):
        with pytest.raises(ValueError):
            Token(value)

    def test_unprovisioned_sentinels(self):
        assert Token("0" * 32).is_unprovisioned
        assert Token("F" * 32).is_unprovisioned
        assert not TOKEN.is_unprovisioned
