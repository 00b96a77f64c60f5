#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
UdpTransport -- a single UDP socket, bound to an ephemeral port, that performs
timeout-bounded request/reply exchanges:

  1. Send one datagram to a destination (unicast or broadcast)
  2. Wait up to the configured timeout for exactly one reply datagram
  3. Report the reply, a timeout, or a transport fault

The socket is acquired when the transport is constructed and released exactly once
by close() (or on exit from a `with` block).
"""

from __future__ import annotations

import socket
import struct
from enum import Enum

from .internal_types import *
from .pkg_logging import logger
from .constants import MAX_DATAGRAM_SIZE, DEFAULT_TIMEOUT_MS, HEADER_LENGTH
from .exceptions import CommandTimeoutError, MiioError

class ReceiveKind(Enum):
    """The outcome of a single request/reply exchange."""
    REPLY = "reply"
    TIMEOUT = "timeout"
    TRANSPORT_FAULT = "transport_fault"

class ReceiveResult(NamedTuple):
    kind: ReceiveKind
    data: Optional[bytes] = None
    """The reply datagram, for kind == REPLY"""
    source: Optional[HostAndPort] = None
    """The address the reply came from, for kind == REPLY"""
    error: Optional[OSError] = None
    """The socket error, for kind == TRANSPORT_FAULT"""

def trim_to_declared_length(data: bytes) -> bytes:
    """Truncates a datagram to the length declared in its header, if that is shorter than the datagram."""
    if len(data) >= 4:
        declared = struct.unpack_from('>H', data, 2)[0]
        if HEADER_LENGTH <= declared < len(data):
            return data[:declared]
    return data

class UdpTransport(ContextManager['UdpTransport']):
    """Raw, timeout-bounded UDP request/reply exchange over one socket."""

    sock: Optional[socket.socket] = None
    """The bound socket, or None once closed."""

    _timeout_ms: int

    def __init__(self, timeout: int=DEFAULT_TIMEOUT_MS, bind_address: str=''):
        """Create and bind the socket.

        Parameters:
            timeout:       The receive timeout in milliseconds. Values < 1 select DEFAULT_TIMEOUT_MS.
            bind_address:  The local address to bind to. Defaults to all interfaces. The port is
                           always ephemeral.
        """
        self._timeout_ms = timeout if timeout >= 1 else DEFAULT_TIMEOUT_MS
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
            sock.bind((bind_address, 0))
            sock.settimeout(self._timeout_ms / 1000.0)
        except BaseException:
            sock.close()
            raise
        self.sock = sock
        logger.debug(f"Created {self}")

    @property
    def timeout(self) -> int:
        """The receive timeout in milliseconds."""
        return self._timeout_ms

    @timeout.setter
    def timeout(self, value: int) -> None:
        self._timeout_ms = value if value >= 1 else DEFAULT_TIMEOUT_MS
        if self.sock is not None:
            self.sock.settimeout(self._timeout_ms / 1000.0)

    @property
    def is_closed(self) -> bool:
        return self.sock is None

    @property
    def local_addr(self) -> Optional[HostAndPort]:
        return None if self.sock is None else self.sock.getsockname()

    def exchange(self, destination: HostAndPort, payload: bytes) -> ReceiveResult:
        """Sends one datagram to destination and waits for one reply.

        Never raises for network conditions; the outcome is reported in the result.
        """
        if self.sock is None:
            raise MiioError(f"{self}: transport is closed")
        self.drain()
        logger.debug(f"Sending {len(payload)} bytes to {destination}")
        try:
            self.sock.sendto(payload, destination)
            data, source = self.sock.recvfrom(MAX_DATAGRAM_SIZE)
        except socket.timeout:
            logger.debug(f"Timed out after {self._timeout_ms} ms waiting for a reply from {destination}")
            return ReceiveResult(ReceiveKind.TIMEOUT)
        except OSError as e:
            logger.debug(f"Transport fault exchanging with {destination}: {e}")
            return ReceiveResult(ReceiveKind.TRANSPORT_FAULT, error=e)
        logger.debug(f"Received {len(data)} bytes from {source}")
        return ReceiveResult(ReceiveKind.REPLY, data=trim_to_declared_length(data), source=(source[0], source[1]))

    def drain(self) -> int:
        """Discards datagrams already waiting on the socket, such as a reply that arrived after its
           exchange timed out. Returns the number discarded."""
        sock = self.sock
        if sock is None:
            return 0
        count = 0
        sock.setblocking(False)
        try:
            while True:
                try:
                    data, source = sock.recvfrom(MAX_DATAGRAM_SIZE)
                except (BlockingIOError, InterruptedError):
                    break
                except OSError as e:
                    logger.debug(f"Ignoring pending socket error while draining: {e}")
                    break
                count += 1
                logger.debug(f"Discarded stale {len(data)}-byte datagram from {source}")
        finally:
            sock.settimeout(self._timeout_ms / 1000.0)
        return count

    def send_and_receive(self, destination: HostAndPort, payload: bytes) -> Optional[bytes]:
        """Sends one datagram and returns the raw reply.

        Raises CommandTimeoutError if no reply arrives within the timeout. Any other socket error
        yields None ("no data"); callers treat that as grounds to retry or give up.
        """
        result = self.exchange(destination, payload)
        if result.kind == ReceiveKind.TIMEOUT:
            raise CommandTimeoutError(f"No reply from {destination[0]}:{destination[1]} within {self._timeout_ms} ms")
        return result.data

    def close(self) -> None:
        """Releases the socket. Calling close() more than once has no effect."""
        sock = self.sock
        if sock is not None:
            self.sock = None
            logger.debug(f"Closing transport bound to {sock.getsockname()}")
            sock.close()

    def __enter__(self) -> UdpTransport:
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
        return f"UdpTransport(local_addr={self.local_addr}, timeout={self._timeout_ms}ms)"

    def __repr__(self) -> str:
        return str(self)
