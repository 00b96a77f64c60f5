#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Token -- the 128-bit shared secret used to authenticate and encrypt miIO payloads.
"""

from __future__ import annotations

from .internal_types import *
from .constants import TOKEN_LENGTH, UNPROVISIONED_TOKENS

class Token:
    """An immutable 128-bit device token.

    Tokens are usually written as 32 hexadecimal digits. Equality and hashing
    are by value.
    """

    _raw: bytes

    def __init__(self, value: Union[str, bytes, bytearray, Token]):
        if isinstance(value, Token):
            raw = value._raw
        elif isinstance(value, str):
            try:
                raw = bytes.fromhex(value.strip())
            except ValueError as e:
                raise ValueError(f"Token: not a hexadecimal string: {value!r}") from e
        elif isinstance(value, (bytes, bytearray)):
            raw = bytes(value)
        else:
            raise TypeError(f"Token: expected str or bytes, got {type(value)}")
        if len(raw) != TOKEN_LENGTH:
            raise ValueError(f"Token: expected {TOKEN_LENGTH} bytes, got {len(raw)}")
        self._raw = raw

    @property
    def raw(self) -> bytes:
        """The token as 16 raw bytes."""
        return self._raw

    @property
    def hex(self) -> str:
        """The token as 32 lowercase hexadecimal digits."""
        return self._raw.hex()

    @property
    def is_unprovisioned(self) -> bool:
        """True if this is one of the all-zeros/all-ones values advertised by a device with no usable secret."""
        return self._raw in UNPROVISIONED_TOKENS

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Token):
            return NotImplemented
        return self._raw == other._raw

    def __hash__(self) -> int:
        return hash(self._raw)

    def __str__(self) -> str:
        return self.hex

    def __repr__(self) -> str:
        return f"Token('{self.hex}')"

def coerce_token(value: Optional[Union[str, bytes, Token]]) -> Optional[Token]:
    """Converts an optional hex string or raw bytes to a Token; None passes through."""
    if value is None:
        return None
    return Token(value)
