#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Type hints used internally by this package.
"""

from __future__ import annotations

from typing import (
    Dict, List, Optional, Union, Any, Set, Tuple, Callable, Awaitable,
    Mapping, MutableMapping, Iterable, Iterator, Sequence,
    AsyncIterator, AsyncIterable, AsyncContextManager, NamedTuple,
  )

from typing_extensions import Self, SupportsIndex

from types import TracebackType

HostAndPort = Tuple[str, int]
"""An IP address or hostname and a port number."""

Jsonable = Union[str, int, float, bool, None, Dict[str, Any], List[Any]]
"""A type that can be serialized to and from JSON."""

JsonableDict = Dict[str, Jsonable]
"""A JSON object."""
