#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Encoding and decoding of miIO datagrams.

Every miIO datagram begins with a fixed 32-byte header (all fields big-endian):

    0x00  u16  magic (0x2131)
    0x02  u16  total datagram length, including the header
    0x04  u32  unknown; zero in commands
    0x08  u32  device id
    0x0c  u32  device timestamp
    0x10  16B  checksum: MD5(header[0:16] + token + encrypted payload)

followed by an optional payload encrypted with AES-128-CBC, where
key = MD5(token) and iv = MD5(key + token). A hello probe is a header with
every byte after the length set to 0xff; in the hello reply, the checksum
field carries the token the device advertises.

The session layer only depends on the abstract Codec interface; MiioCodec is
the implementation used by default.
"""

from __future__ import annotations

import json
import hashlib
import struct
from abc import ABC, abstractmethod

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .internal_types import *
from .pkg_logging import logger
from .constants import PACKET_MAGIC, HEADER_LENGTH, UNKNOWN_ID, TOKEN_LENGTH
from .token import Token

_HEADER_STRUCT = struct.Struct('>HHIII')
"""magic, length, unknown, device id, timestamp. The checksum field follows."""

Params = Union[JsonableList, JsonableDict, None]

class Response:
    """A decoded datagram received from a device. Constructed per receive; never persisted."""

    device_id: int
    """The device id in the header, or -1 if the header did not carry one."""

    device_timestamp: int
    """The device timestamp in the header, or -1 if the header did not carry one."""

    payload_sequence: int
    """The request identifier echoed in the payload, or -1 if there is none."""

    parameters: Jsonable
    """The decoded result of the command, or None if the payload carried none."""

    valid: bool
    """True if the datagram passed all structural checks (length, checksum, decryption)."""

    token: Optional[Token]
    """The token carried in the checksum field. Only meaningful for a hello reply."""

    payload_text: Optional[str]
    """The decrypted payload text, if there was a payload and it could be decrypted."""

    def __init__(
            self,
            device_id: int=-1,
            device_timestamp: int=-1,
            payload_sequence: int=-1,
            parameters: Jsonable=None,
            valid: bool=False,
            token: Optional[Token]=None,
            payload_text: Optional[str]=None,
          ):
        self.device_id = device_id
        self.device_timestamp = device_timestamp
        self.payload_sequence = payload_sequence
        self.parameters = parameters
        self.valid = valid
        self.token = token
        self.payload_text = payload_text

    @property
    def has_identity(self) -> bool:
        """True if both the device id and the device timestamp were present."""
        return self.device_id != -1 and self.device_timestamp != -1

    def __str__(self) -> str:
        return (f"Response(valid={self.valid}, device_id={self.device_id}, device_timestamp={self.device_timestamp}, "
                f"payload_sequence={self.payload_sequence}, parameters={self.parameters!r})")

    def __repr__(self) -> str:
        return str(self)

class Codec(ABC):
    """Encodes outgoing commands into datagrams and decodes/validates incoming datagrams."""

    @abstractmethod
    def encode_hello(self) -> bytes:
        """Returns the unauthenticated handshake datagram."""
        raise NotImplementedError()

    @abstractmethod
    def encode(
            self,
            token: Token,
            device_id: int,
            device_timestamp: int,
            sequence: int,
            method: str,
            params: Params,
          ) -> bytes:
        """Encodes a command into a datagram."""
        raise NotImplementedError()

    @abstractmethod
    def encode_payload(
            self,
            token: Token,
            device_id: int,
            device_timestamp: int,
            payload: str,
          ) -> bytes:
        """Encodes an already-serialized payload string into a datagram."""
        raise NotImplementedError()

    @abstractmethod
    def decode(self, data: bytes, token: Optional[Token]=None) -> Response:
        """Decodes a datagram.

        If token is None, only the header is parsed; this is used for hello replies
        when the token is not yet known. Otherwise the checksum is verified and the payload
        decrypted. Never raises on malformed input: any length, checksum or decryption failure
        yields a Response with valid=False.
        """
        raise NotImplementedError()

def _id_or_sentinel(value: int) -> int:
    return -1 if value == UNKNOWN_ID else value

class MiioCodec(Codec):
    """The miIO wire format, with AES-128-CBC payload encryption provided by the cryptography package."""

    @staticmethod
    def _key_and_iv(token: Token) -> Tuple[bytes, bytes]:
        key = hashlib.md5(token.raw).digest()
        iv = hashlib.md5(key + token.raw).digest()
        return key, iv

    def encrypt(self, token: Token, plaintext: bytes) -> bytes:
        key, iv = self._key_and_iv(token)
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(plaintext) + padder.finalize()
        encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
        return encryptor.update(padded) + encryptor.finalize()

    def decrypt(self, token: Token, ciphertext: bytes) -> bytes:
        """Decrypts a payload. Raises ValueError if the ciphertext or its padding is malformed."""
        key, iv = self._key_and_iv(token)
        decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        return unpadder.update(padded) + unpadder.finalize()

    @staticmethod
    def checksum(header: bytes, token: Token, encrypted_payload: bytes) -> bytes:
        return hashlib.md5(header[:16] + token.raw + encrypted_payload).digest()

    def encode_hello(self) -> bytes:
        return struct.pack('>HH', PACKET_MAGIC, HEADER_LENGTH) + b'\xff' * (HEADER_LENGTH - 4)

    def encode_payload(
            self,
            token: Token,
            device_id: int,
            device_timestamp: int,
            payload: str,
          ) -> bytes:
        encrypted = self.encrypt(token, payload.encode('utf-8'))
        header = _HEADER_STRUCT.pack(
            PACKET_MAGIC,
            HEADER_LENGTH + len(encrypted),
            0,
            device_id & 0xFFFFFFFF,
            device_timestamp & 0xFFFFFFFF,
          )
        return header + self.checksum(header, token, encrypted) + encrypted

    def encode(
            self,
            token: Token,
            device_id: int,
            device_timestamp: int,
            sequence: int,
            method: str,
            params: Params,
          ) -> bytes:
        payload: JsonableDict = {
            'id': sequence,
            'method': method,
            'params': [] if params is None else params,
          }
        return self.encode_payload(token, device_id, device_timestamp, json.dumps(payload, separators=(',', ':')))

    def decode(self, data: bytes, token: Optional[Token]=None) -> Response:
        if len(data) < HEADER_LENGTH:
            logger.debug(f"Datagram too short ({len(data)} bytes)")
            return Response()
        magic, length, _, raw_device_id, raw_timestamp = _HEADER_STRUCT.unpack_from(data)
        if magic != PACKET_MAGIC or length < HEADER_LENGTH or length > len(data):
            logger.debug(f"Malformed header: magic={magic:#06x}, length={length}, datagram length={len(data)}")
            return Response()
        data = data[:length]
        device_id = _id_or_sentinel(raw_device_id)
        device_timestamp = _id_or_sentinel(raw_timestamp)
        checksum_field = data[16:HEADER_LENGTH]
        assert len(checksum_field) == TOKEN_LENGTH

        if token is None:
            # Envelope-only parse; the hello reply carries the advertised token in the checksum field.
            return Response(
                device_id=device_id,
                device_timestamp=device_timestamp,
                valid=True,
                token=Token(checksum_field),
              )

        encrypted = data[HEADER_LENGTH:]
        if len(encrypted) == 0:
            return Response(device_id=device_id, device_timestamp=device_timestamp, valid=True, token=Token(checksum_field))

        if self.checksum(data, token, encrypted) != checksum_field:
            logger.debug("Checksum mismatch")
            return Response(device_id=device_id, device_timestamp=device_timestamp)

        try:
            payload_text = self.decrypt(token, encrypted).rstrip(b'\x00').decode('utf-8')
        except ValueError as e:
            logger.debug(f"Could not decrypt payload: {e}")
            return Response(device_id=device_id, device_timestamp=device_timestamp)

        response = Response(device_id=device_id, device_timestamp=device_timestamp, valid=True, payload_text=payload_text)
        try:
            payload = json.loads(payload_text)
        except ValueError as e:
            logger.debug(f"Payload is not valid JSON: {e}")
            response.valid = False
            return response
        if not isinstance(payload, dict):
            response.valid = False
            return response

        sequence = payload.get('id', -1)
        response.payload_sequence = sequence if isinstance(sequence, int) and not isinstance(sequence, bool) else -1
        if 'result' in payload:
            response.parameters = payload['result']
        elif isinstance(payload.get('error'), dict):
            response.parameters = payload['error'].get('message', None)
        return response
