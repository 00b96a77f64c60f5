# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Constants used by this package"""

MIIO_PORT = 54321
"""The UDP port number on which miIO devices listen for commands and hello probes."""

MAX_DATAGRAM_SIZE = 65507
"""The size of the receive buffer; the largest payload a UDP/IPv4 datagram can carry."""

DEFAULT_TIMEOUT_MS = 1000
"""The default receive timeout, in milliseconds. Also used when a timeout < 1 is configured."""

DEFAULT_RETRIES = 0
"""The default number of retries after a failed exchange."""

SEQUENCE_LIMIT = 10000
"""Local sequence numbers live in [1, SEQUENCE_LIMIT). Reaching the limit wraps back to 1."""

SEQUENCE_SEED_MASK = 8191
"""After a handshake, the local sequence is seeded from the device timestamp masked with this value."""

PACKET_MAGIC = 0x2131
"""The first two bytes of every miIO datagram, big-endian."""

HEADER_LENGTH = 0x20
"""Length of the fixed miIO header. A hello datagram consists of the header alone."""

UNKNOWN_ID = 0xFFFFFFFF
"""Device id / timestamp value reported in a header that carries no valid identity.
   Decoded as -1."""

TOKEN_LENGTH = 16
"""Length of a device token, in bytes (128 bits)."""

UNPROVISIONED_TOKENS = (
    bytes.fromhex("00000000000000000000000000000000"),
    bytes.fromhex("FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFF"),
  )
"""Tokens advertised by a device that has no usable secret. Rejected during discovery."""

UNKNOWN_METHOD = "unknown_method"
"""The payload a device returns when it does not recognize the requested method name."""

INFO_METHOD = "miIO.info"
"""The method used to query device information, including its model string."""
