#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Session -- one logical conversation with one miIO device. A Session can:

  1. Discover a device, either at a known address or by probing the broadcast address of every
     active network interface, and learn its device id, timestamp and (if not supplied) token
  2. Send authenticated commands and validate the replies, retrying on timeouts and invalid replies
  3. Serialize its identity and counters so a later process can reconnect without rediscovery

The exchange is strictly half-duplex: each call blocks the calling thread until a reply arrives
or the retry budget is exhausted. A Session must not be used from more than one thread at a time.
"""

from __future__ import annotations

from enum import Enum

from .internal_types import *
from .pkg_logging import logger
from .constants import (
    MIIO_PORT,
    DEFAULT_TIMEOUT_MS,
    DEFAULT_RETRIES,
    SEQUENCE_LIMIT,
    SEQUENCE_SEED_MASK,
    UNKNOWN_METHOD,
    INFO_METHOD,
  )
from .exceptions import (
    CommandExecutionError,
    DeviceNotFoundError,
    IpOrTokenUnknownError,
    InvalidResponseError,
    EmptyResponseError,
    UnknownMethodError,
    InvalidParametersError,
  )
from .token import Token, coerce_token
from .codec import Codec, MiioCodec, Response, Params
from .transport import UdpTransport, ReceiveKind
from .retry import RetryPolicy
from .util import get_broadcast_addresses

class DiscoveryState(Enum):
    UNRESOLVED = "unresolved"
    PROBING = "probing"
    RESOLVED = "resolved"
    FAILED = "failed"

class PeerIdentity:
    """Who the session talks to. Owned exclusively by a Session."""

    address: Optional[str]
    """The device's IPv4 address, or None until discovered."""

    token: Optional[Token]
    """The shared secret, or None until discovered."""

    acceptable_models: Optional[FrozenSet[str]]
    """If not None, only a device reporting one of these models is accepted."""

    def __init__(
            self,
            address: Optional[str]=None,
            token: Optional[Union[str, bytes, Token]]=None,
            acceptable_models: Optional[Iterable[str]]=None,
          ):
        self.address = address
        self.token = coerce_token(token)
        if isinstance(acceptable_models, str):
            acceptable_models = [acceptable_models]
        self.acceptable_models = None if acceptable_models is None else frozenset(acceptable_models)

    def copy(self) -> PeerIdentity:
        return PeerIdentity(self.address, self.token, self.acceptable_models)

    def __str__(self) -> str:
        models = None if self.acceptable_models is None else sorted(self.acceptable_models)
        return f"PeerIdentity(address={self.address}, token={'<set>' if self.token else None}, models={models})"

    def __repr__(self) -> str:
        return str(self)

def next_sequence(sequence: int) -> int:
    """The sequence value following `sequence`; wraps to 1 instead of reaching SEQUENCE_LIMIT."""
    result = sequence + 1
    if result >= SEQUENCE_LIMIT or result < 1:
        result = 1
    return result

class SessionClock:
    """The counters that must stay in step with the device."""

    device_id: int = -1
    """The device id reported in the handshake, or -1 if unknown."""

    device_timestamp: int = -1
    """Local prediction of the device's timestamp counter, or -1 if unknown. Incremented
       before each send."""

    local_sequence: int = 1
    """The identifier the next request will carry; in [1, SEQUENCE_LIMIT)."""

    def __init__(self, device_id: int=-1, device_timestamp: int=-1, local_sequence: int=1):
        self.device_id = device_id
        self.device_timestamp = device_timestamp
        self.local_sequence = local_sequence

    @classmethod
    def from_handshake(cls, device_id: int, device_timestamp: int) -> SessionClock:
        """A clock seeded from a hello reply. The local sequence starts from the low bits of the
           device timestamp, and never from 0."""
        seed = device_timestamp & SEQUENCE_SEED_MASK
        return cls(device_id, device_timestamp, seed if seed >= 1 else 1)

    @property
    def is_known(self) -> bool:
        return self.device_id != -1 and self.device_timestamp != -1

    def advance(self) -> Tuple[int, int]:
        """Prepares the counters for one outgoing command.

        Increments the device timestamp, captures the current local sequence as the request
        identifier and moves the local sequence on. Returns (device_timestamp, sequence), the
        values the command must carry, including on any retries.
        """
        self.device_timestamp += 1
        sequence = self.local_sequence
        if sequence >= SEQUENCE_LIMIT or sequence < 1:
            sequence = 1
        self.local_sequence = next_sequence(sequence)
        return self.device_timestamp, sequence

    def copy(self) -> SessionClock:
        return SessionClock(self.device_id, self.device_timestamp, self.local_sequence)

    def __str__(self) -> str:
        return f"SessionClock(device_id={self.device_id}, device_timestamp={self.device_timestamp}, local_sequence={self.local_sequence})"

    def __repr__(self) -> str:
        return str(self)

ModelQuery = Callable[['Session'], str]
"""Returns the model string of the device a (tentatively identified) session is talking to."""

def query_model_via_info(session: Session) -> str:
    """Default model query: issues miIO.info and returns its "model" property."""
    response = session.dispatch(INFO_METHOD, None)
    info = response.parameters
    if not isinstance(info, dict):
        raise InvalidResponseError(f"{INFO_METHOD} did not return an object")
    model = info.get('model', '')
    return model if isinstance(model, str) else str(model)

class Session(ContextManager['Session']):
    """
    An authenticated, retrying request/response session with a single miIO device.

    Usage:
        with Session(address="192.168.1.20", token="00112233445566778899aabbccddeeff", retries=2) as session:
            response = session.send("get_prop", ["power"])
            print(response.parameters)

    If the address or token is not supplied, they are discovered on first use. Discovery without an
    address requires `acceptable_models`, since there is no other way to validate an anonymous device.
    """

    identity: PeerIdentity
    clock: SessionClock
    retries: int
    """The number of retries after a failed exchange, for both discovery and commands."""

    port: int
    codec: Codec
    transport: UdpTransport

    model_query: ModelQuery
    broadcast_addresses: Callable[[], List[str]]
    """Returns candidate broadcast addresses for discovery, in priority order."""

    _state: DiscoveryState = DiscoveryState.UNRESOLVED

    def __init__(
            self,
            address: Optional[str]=None,
            token: Optional[Union[str, bytes, Token]]=None,
            acceptable_models: Optional[Iterable[str]]=None,
            timeout: int=DEFAULT_TIMEOUT_MS,
            retries: int=DEFAULT_RETRIES,
            port: int=MIIO_PORT,
            codec: Optional[Codec]=None,
            transport: Optional[UdpTransport]=None,
            model_query: Optional[ModelQuery]=None,
            broadcast_addresses: Optional[Callable[[], List[str]]]=None,
            clock: Optional[SessionClock]=None,
          ):
        """Create a session. The socket is acquired here and held until close().

        Parameters:
            address:             The device's IP address. If None, the device is discovered by broadcast.
            token:               The device token, as 32 hex digits or 16 bytes. If None, the token
                                   advertised by the device during discovery is adopted.
            acceptable_models:   If given, only devices reporting one of these model strings are accepted.
            timeout:             The receive timeout in milliseconds. Values < 1 select DEFAULT_TIMEOUT_MS.
            retries:             Retries after a failed exchange. Negative values are treated as 0.
            port:                The device's UDP port. Defaults to MIIO_PORT.
            codec:               The datagram codec. Defaults to MiioCodec().
            transport:           A transport to use instead of creating a UdpTransport. The session takes
                                   ownership and closes it.
            model_query:         Overrides how a candidate's model is determined during discovery.
            broadcast_addresses: Overrides how broadcast addresses are enumerated during discovery.
            clock:               Previously saved counters. If they are known and the address and token are
                                   supplied, the session starts out resolved.
        """
        if transport is None:
            transport = UdpTransport(timeout)
        else:
            transport.timeout = timeout
        self.transport = transport
        try:
            self.identity = PeerIdentity(address, token, acceptable_models)
            self.clock = SessionClock() if clock is None else clock.copy()
            self.retries = retries if retries >= 0 else 0
            self.port = port
            self.codec = MiioCodec() if codec is None else codec
            self.model_query = query_model_via_info if model_query is None else model_query
            self.broadcast_addresses = get_broadcast_addresses if broadcast_addresses is None else broadcast_addresses
            if self.is_resolved:
                self._state = DiscoveryState.RESOLVED
        except BaseException:
            transport.close()
            raise

    # ------------------------------------------------------------------ properties

    @property
    def state(self) -> DiscoveryState:
        return self._state

    @property
    def is_resolved(self) -> bool:
        """True if the address, token, device id and device timestamp are all known."""
        return (
            self.identity.address is not None and
            self.identity.token is not None and
            self.clock.is_known
          )

    @property
    def address(self) -> Optional[str]:
        return self.identity.address

    @property
    def token(self) -> Optional[Token]:
        return self.identity.token

    @property
    def acceptable_models(self) -> Optional[FrozenSet[str]]:
        return self.identity.acceptable_models

    @property
    def timeout(self) -> int:
        """The receive timeout in milliseconds."""
        return self.transport.timeout

    @timeout.setter
    def timeout(self, value: int) -> None:
        self.transport.timeout = value

    @property
    def is_closed(self) -> bool:
        return self.transport.is_closed

    # ------------------------------------------------------------------ discovery

    def candidate_addresses(self) -> List[str]:
        """The addresses to probe on one discovery pass, in order."""
        if self.identity.address is not None:
            return [self.identity.address]
        if self.identity.acceptable_models is None:
            logger.warning("Cannot discover a device by broadcast without a set of acceptable models")
            return []
        return list(self.broadcast_addresses())

    def _probe(self, candidate: str) -> bool:
        """Sends a hello to one candidate address. On success, commits the learned identity and
           counters and returns True. On failure, leaves the session unchanged."""
        result = self.transport.exchange((candidate, self.port), self.codec.encode_hello())
        if result.kind != ReceiveKind.REPLY:
            logger.debug(f"No hello reply from {candidate}: {result.kind.value}")
            return False
        assert result.data is not None and result.source is not None
        hello = self.codec.decode(result.data)
        if not hello.valid:
            logger.debug(f"Malformed hello reply from {result.source}")
            return False

        token = self.identity.token
        if token is None:
            if hello.token is None or hello.token.is_unprovisioned:
                logger.warning(f"Device at {result.source[0]} advertised no usable token; rejecting")
                return False
            token = hello.token

        if not hello.has_identity:
            logger.debug(f"Hello reply from {result.source} carries no device id/timestamp")
            return False

        saved_identity = self.identity
        saved_clock = self.clock
        address = saved_identity.address if saved_identity.address is not None else result.source[0]
        self.identity = PeerIdentity(address, token, saved_identity.acceptable_models)
        self.clock = SessionClock.from_handshake(hello.device_id, hello.device_timestamp)

        acceptable_models = self.identity.acceptable_models
        if acceptable_models is not None:
            try:
                model: Optional[str] = self.model_query(self)
            except CommandExecutionError as e:
                logger.debug(f"Model query to {address} failed: {e}")
                model = None
            if model not in acceptable_models:
                logger.warning(f"Device at {address} has model {model!r}, not one of {sorted(acceptable_models)}; rejecting")
                self.identity = saved_identity
                self.clock = saved_clock
                return False

        logger.info(f"Resolved device {self.clock.device_id} at {address}")
        return True

    def discover(self) -> bool:
        """Performs the hello handshake, retrying the whole probe sequence up to `retries` times.

        Returns True if a device was resolved. The first candidate that passes every check wins.
        """
        self._state = DiscoveryState.PROBING
        policy = RetryPolicy(self.retries)
        for attempt in policy:
            for candidate in self.candidate_addresses():
                if self._probe(candidate):
                    self._state = DiscoveryState.RESOLVED
                    return True
            attempt.fail(DeviceNotFoundError())
        self._state = DiscoveryState.FAILED
        logger.info(f"Discovery failed after {policy.attempts_made} pass(es)")
        return False

    def ensure_resolved(self) -> None:
        """Runs discovery if the session is not resolved.

        Raises DeviceNotFoundError if discovery fails, and IpOrTokenUnknownError if the address or
        token is still unknown afterwards.
        """
        if not self.is_resolved:
            if not self.discover():
                raise DeviceNotFoundError()
        if self.identity.address is None or self.identity.token is None:
            raise IpOrTokenUnknownError()

    # ------------------------------------------------------------------ command dispatch

    def validate(self, reply: Optional[bytes], token: Token, sequence: int) -> Response:
        """Decodes a reply and checks it answers the request that carried `sequence`.

        Raises InvalidResponseError, EmptyResponseError or UnknownMethodError.
        """
        if reply is None:
            raise InvalidResponseError("No data received")
        response = self.codec.decode(reply, token)
        if not response.valid:
            raise InvalidResponseError("Reply failed length, checksum or decryption checks")
        if response.payload_sequence != sequence:
            raise InvalidResponseError(f"Reply id {response.payload_sequence} does not match request id {sequence}")
        if not response.has_identity:
            raise InvalidResponseError("Reply carries no device id/timestamp")
        if response.parameters is None:
            raise EmptyResponseError()
        if isinstance(response.parameters, str) and response.parameters == UNKNOWN_METHOD:
            raise UnknownMethodError()
        return response

    def dispatch(self, method: str, params: Params=None) -> Response:
        """Sends a command using the current identity, without triggering discovery.

        Used by send() once the session is resolved, and by the discovery model query while the
        identity is still tentative.
        """
        if not isinstance(method, str):
            raise InvalidParametersError(f"Method name must be a str, got {type(method).__name__}")
        if params is not None and not isinstance(params, (list, dict)):
            raise InvalidParametersError(f"Parameters must be a list or dict, got {type(params).__name__}")
        address = self.identity.address
        token = self.identity.token
        if address is None or token is None:
            raise IpOrTokenUnknownError()
        if not self.clock.is_known:
            raise IpOrTokenUnknownError("Device id and timestamp are unknown; the handshake has not completed")

        device_timestamp, sequence = self.clock.advance()
        destination = (address, self.port)
        policy = RetryPolicy(self.retries)
        for attempt in policy:
            datagram = self.codec.encode(token, self.clock.device_id, device_timestamp, sequence, method, params)
            logger.debug(f"Sending {method} (id={sequence}, attempt {attempt.number}) to {address}")
            try:
                reply = self.transport.send_and_receive(destination, datagram)
                return self.validate(reply, token, sequence)
            except UnknownMethodError:
                raise
            except CommandExecutionError as e:
                attempt.fail(e)
        policy.raise_last()

    def send(self, method: str, params: Params=None) -> Response:
        """Sends a command and returns the validated response, discovering the device first if needed.

        Raises a CommandExecutionError subclass on failure.
        """
        self.ensure_resolved()
        return self.dispatch(method, params)

    def send_raw(self, payload: Optional[str]) -> str:
        """Sends an arbitrary, already-serialized payload string and returns the decrypted reply text.

        The reply's request identifier is not checked, since the caller chose the payload.
        """
        if payload is None:
            raise InvalidParametersError("Payload must not be None")
        self.ensure_resolved()
        address = self.identity.address
        token = self.identity.token
        assert address is not None and token is not None

        device_timestamp, _ = self.clock.advance()
        destination = (address, self.port)
        policy = RetryPolicy(self.retries)
        for attempt in policy:
            datagram = self.codec.encode_payload(token, self.clock.device_id, device_timestamp, payload)
            try:
                reply = self.transport.send_and_receive(destination, datagram)
                if reply is None:
                    raise InvalidResponseError("No data received")
                response = self.codec.decode(reply, token)
                if not response.valid or response.payload_text is None:
                    raise InvalidResponseError()
                return response.payload_text
            except CommandExecutionError as e:
                attempt.fail(e)
        policy.raise_last()

    # ------------------------------------------------------------------ persistence

    def to_state(self) -> JsonableDict:
        """Returns the identity, counters and settings as JSON-able data. The socket is not included."""
        models = self.identity.acceptable_models
        return {
            "address": self.identity.address,
            "token": None if self.identity.token is None else self.identity.token.hex,
            "acceptable_models": None if models is None else sorted(models),
            "device_id": self.clock.device_id,
            "device_timestamp": self.clock.device_timestamp,
            "local_sequence": self.clock.local_sequence,
            "timeout": self.timeout,
            "retries": self.retries,
            "port": self.port,
          }

    @classmethod
    def from_state(cls, state: Mapping[str, Any], **kwargs: Any) -> Session:
        """Recreates a session from to_state() data, acquiring a new socket. Extra keyword
           arguments are passed to the constructor."""
        clock = SessionClock(
            int(state.get("device_id", -1)),
            int(state.get("device_timestamp", -1)),
            int(state.get("local_sequence", 1)),
          )
        return cls(
            address=state.get("address"),
            token=state.get("token"),
            acceptable_models=state.get("acceptable_models"),
            timeout=int(state.get("timeout", DEFAULT_TIMEOUT_MS)),
            retries=int(state.get("retries", DEFAULT_RETRIES)),
            port=int(state.get("port", MIIO_PORT)),
            clock=clock,
            **kwargs,
          )

    # ------------------------------------------------------------------ lifecycle

    def close(self) -> None:
        """Releases the socket. Safe to call more than once."""
        self.transport.close()

    def __enter__(self) -> Session:
        return self

    def __exit__(
            self,
            exc_type: Optional[type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType]
      ) -> bool:
        self.close()
        return False

    def __str__(self) -> str:
        return f"Session({self.identity}, {self.clock}, state={self._state.value})"

    def __repr__(self) -> str:
        return str(self)
