#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Exceptions defined by this package"""

from __future__ import annotations

from enum import Enum

from .internal_types import *

class MiioError(Exception):
  """Base class for all error exceptions defined by this package."""
  pass

class ErrorKind(Enum):
    """The reason a command could not be executed."""
    DEVICE_NOT_FOUND = "Device not found"
    IP_OR_TOKEN_UNKNOWN = "IP address or token unknown"
    TIMEOUT = "Timeout"
    INVALID_RESPONSE = "Invalid response"
    EMPTY_RESPONSE = "Empty response"
    UNKNOWN_METHOD = "Unknown method"
    INVALID_PARAMETERS = "Invalid parameters"

class CommandExecutionError(MiioError):
    """Raised when a command or discovery could not be completed. The kind attribute
       identifies the reason; a subclass exists for each kind so callers can catch them
       individually."""

    kind: ErrorKind

    def __init__(self, kind: ErrorKind, msg: Optional[str]=None):
        if msg is None:
            msg = kind.value
        super().__init__(msg)
        self.kind = kind

class DeviceNotFoundError(CommandExecutionError):
    def __init__(self, msg: Optional[str]=None):
        super().__init__(ErrorKind.DEVICE_NOT_FOUND, msg)

class IpOrTokenUnknownError(CommandExecutionError):
    def __init__(self, msg: Optional[str]=None):
        super().__init__(ErrorKind.IP_OR_TOKEN_UNKNOWN, msg)

class CommandTimeoutError(CommandExecutionError):
    def __init__(self, msg: Optional[str]=None):
        super().__init__(ErrorKind.TIMEOUT, msg)

class InvalidResponseError(CommandExecutionError):
    def __init__(self, msg: Optional[str]=None):
        super().__init__(ErrorKind.INVALID_RESPONSE, msg)

class EmptyResponseError(CommandExecutionError):
    def __init__(self, msg: Optional[str]=None):
        super().__init__(ErrorKind.EMPTY_RESPONSE, msg)

class UnknownMethodError(CommandExecutionError):
    def __init__(self, msg: Optional[str]=None):
        super().__init__(ErrorKind.UNKNOWN_METHOD, msg)

class InvalidParametersError(CommandExecutionError):
    def __init__(self, msg: Optional[str]=None):
        super().__init__(ErrorKind.INVALID_PARAMETERS, msg)

