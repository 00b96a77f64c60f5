# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Package miio_protocol implements a client for the miIO device control protocol.

miIO is a proprietary UDP protocol (port 54321) spoken by many networked home appliances:
lamps, purifiers, vacuums, plugs, etc. A client first exchanges an unauthenticated "hello"
with the device to learn its device id and timestamp counter (and, for unprovisioned devices,
its token), then sends JSON commands that are encrypted and checksummed with the shared
128-bit token.

The core of this package is the Session, which owns discovery, request sequencing, retries
and reply validation. Device and its subclasses are thin convenience layers on top of it.
"""

from .version import __version__

from .internal_types import Jsonable, JsonableDict

from .exceptions import (
    MiioError,
    ErrorKind,
    CommandExecutionError,
    DeviceNotFoundError,
    IpOrTokenUnknownError,
    CommandTimeoutError,
    InvalidResponseError,
    EmptyResponseError,
    UnknownMethodError,
    InvalidParametersError,
  )

from .token import Token
from .codec import Codec, MiioCodec, Response
from .transport import UdpTransport, ReceiveKind, ReceiveResult
from .retry import RetryPolicy
from .session import Session, SessionClock, PeerIdentity, DiscoveryState
from .device import Device
from .eyecare_lamp import EyecareLamp, PropName
from .util import get_broadcast_addresses
from .constants import MIIO_PORT, DEFAULT_TIMEOUT_MS, DEFAULT_RETRIES

__all__ = [
    '__version__',
    'Jsonable', 'JsonableDict',
    'MiioError', 'ErrorKind', 'CommandExecutionError',
    'DeviceNotFoundError', 'IpOrTokenUnknownError', 'CommandTimeoutError',
    'InvalidResponseError', 'EmptyResponseError', 'UnknownMethodError', 'InvalidParametersError',
    'Token',
    'Codec', 'MiioCodec', 'Response',
    'UdpTransport', 'ReceiveKind', 'ReceiveResult',
    'RetryPolicy',
    'Session', 'SessionClock', 'PeerIdentity', 'DiscoveryState',
    'Device', 'EyecareLamp', 'PropName',
    'get_broadcast_addresses',
    'MIIO_PORT', 'DEFAULT_TIMEOUT_MS', 'DEFAULT_RETRIES',
]
