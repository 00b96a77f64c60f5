"""
Test doubles: a scripted in-memory transport and a simulated device that answers
through the real MiioCodec.
"""

from __future__ import annotations

import json
import struct
from typing import Any, Callable, Dict, List, Optional, Tuple

from miio_protocol.codec import MiioCodec
from miio_protocol.constants import PACKET_MAGIC, HEADER_LENGTH
from miio_protocol.exceptions import MiioError
from miio_protocol.token import Token
from miio_protocol.transport import UdpTransport, ReceiveKind, ReceiveResult

TOKEN_HEX = "00112233445566778899aabbccddeeff"
TOKEN = Token(TOKEN_HEX)
DEVICE_ADDRESS = "192.168.1.20"

Responder = Callable[[Tuple[str, int], bytes], ReceiveResult]

def reply(data: bytes, source: str=DEVICE_ADDRESS) -> ReceiveResult:
    return ReceiveResult(ReceiveKind.REPLY, data=data, source=(source, 54321))

def timeout() -> ReceiveResult:
    return ReceiveResult(ReceiveKind.TIMEOUT)

def fault() -> ReceiveResult:
    return ReceiveResult(ReceiveKind.TRANSPORT_FAULT, error=OSError("Host unreachable"))

def hello_reply(device_id: int, device_timestamp: int, token: bytes) -> bytes:
    return struct.pack('>HHIII', PACKET_MAGIC, HEADER_LENGTH, 0, device_id, device_timestamp) + token

def is_hello(payload: bytes) -> bool:
    return len(payload) == HEADER_LENGTH and payload[4:] == b'\xff' * (HEADER_LENGTH - 4)

class FakeTransport(UdpTransport):
    """A UdpTransport that never opens a socket. Every exchange is recorded and answered by `responder`."""

    responder: Responder
    sent: List[Tuple[Tuple[str, int], bytes]]
    closed: bool = False
    close_count: int = 0

    def __init__(self, responder: Optional[Responder]=None, timeout_ms: int=1000):
        self._timeout_ms = timeout_ms
        self.responder = responder if responder is not None else (lambda destination, payload: timeout())
        self.sent = []

    @property
    def is_closed(self) -> bool:
        return self.closed

    def exchange(self, destination: Tuple[str, int], payload: bytes) -> ReceiveResult:
        if self.closed:
            raise MiioError("closed")
        self.sent.append((destination, payload))
        return self.responder(destination, payload)

    def close(self) -> None:
        self.close_count += 1
        self.closed = True

    @property
    def commands_sent(self) -> List[Tuple[Tuple[str, int], bytes]]:
        return [ s for s in self.sent if not is_hello(s[1]) ]

    @property
    def hellos_sent(self) -> List[Tuple[Tuple[str, int], bytes]]:
        return [ s for s in self.sent if is_hello(s[1]) ]

class SimulatedDevice:
    """Answers hello probes and commands the way a provisioned device would.

    `handlers` maps method names to functions of params returning the result. Unknown
    methods are answered with the "unknown_method" error.
    """

    def __init__(
            self,
            token: Token=TOKEN,
            device_id: int=0x01020304,
            device_timestamp: int=1000,
            advertised_token: Optional[bytes]=None,
            model: str="philips.light.sread1",
            handlers: Optional[Dict[str, Callable[[Any], Any]]]=None,
            address: str=DEVICE_ADDRESS,
          ):
        self.token = token
        self.device_id = device_id
        self.device_timestamp = device_timestamp
        self.advertised_token = b'\xff' * 16 if advertised_token is None else advertised_token
        self.model = model
        self.address = address
        self.handlers: Dict[str, Callable[[Any], Any]] = {
            "miIO.info": lambda params: {"model": self.model, "fw_ver": "1.0.5"},
          }
        if handlers is not None:
            self.handlers.update(handlers)
        self.codec = MiioCodec()
        self.requests: List[Dict[str, Any]] = []
        self.id_offset = 0
        """Added to the id echoed in replies; non-zero simulates a mismatched reply."""

    def make_reply(self, request_id: int, body: Dict[str, Any]) -> bytes:
        body = dict(body, id=request_id + self.id_offset)
        return self.codec.encode_payload(self.token, self.device_id, self.device_timestamp, json.dumps(body))

    def answer(self, payload: bytes) -> bytes:
        if is_hello(payload):
            return hello_reply(self.device_id, self.device_timestamp, self.advertised_token)
        request = self.codec.decode(payload, self.token)
        assert request.valid and request.payload_text is not None
        body = json.loads(request.payload_text)
        self.requests.append(body)
        handler = self.handlers.get(body["method"])
        if handler is None:
            return self.make_reply(body["id"], {"error": {"code": -9999, "message": "unknown_method"}})
        return self.make_reply(body["id"], {"result": handler(body["params"])})

    def responder(self, destination: Tuple[str, int], payload: bytes) -> ReceiveResult:
        return reply(self.answer(payload), source=self.address)
