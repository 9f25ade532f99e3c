#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
DeviceAddress -- the host/port pair of an appliance's command endpoint.
"""

from __future__ import annotations

from .internal_types import *
from .constants import DEFAULT_COMMAND_PORT

class DeviceAddress(NamedTuple):
    """The command endpoint of a single appliance. Immutable once resolved,
       either from configuration or by discovery."""

    host: str
    """The IP address or hostname of the appliance."""

    port: int = DEFAULT_COMMAND_PORT
    """The TCP port on which the appliance accepts commands."""

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"

def parse_device_address(value: str, default_port: int=DEFAULT_COMMAND_PORT) -> DeviceAddress:
    """Parses "<host>" or "<host>:<port>" into a DeviceAddress.

    Raises ValueError if the port is not an integer or the host is empty.
    """
    value = value.strip()
    host, sep, port_str = value.rpartition(':')
    if sep == '':
        host, port = value, default_port
    else:
        try:
            port = int(port_str)
        except ValueError:
            raise ValueError(f"Invalid port in device address: {value!r}") from None
    if host == '':
        raise ValueError(f"Missing host in device address: {value!r}")
    return DeviceAddress(host, port)
