# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Type hints used internally by this package. Intended to be star-imported.
"""

from __future__ import annotations

from typing import (
    Dict, List, Optional, Union, Any, TypeVar, Tuple, overload,
    Callable, Iterable, Iterator, Generator, cast, TYPE_CHECKING,
    Mapping, MutableMapping, Sequence, Set, FrozenSet, Type,
    ContextManager, NamedTuple, NoReturn, TextIO,
  )

from types import TracebackType

from typing_extensions import Self

Jsonable = Union[str, int, float, bool, None, Dict[str, Any], List[Any]]
"""A type hint for a value that can be serialized to JSON."""

JsonableDict = Dict[str, Jsonable]
"""A type hint for a JSON-serializable dict (a JSON object)."""

JsonableList = List[Jsonable]
"""A type hint for a JSON-serializable list (a JSON array)."""

HostAndPort = Tuple[str, int]
"""An (ip_address, port) tuple as used by socket.sendto() and socket.recvfrom()."""
