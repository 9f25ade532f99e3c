# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Package yeelight_lan controls Yeelight smart lighting appliances over the local network.

Appliances speak two protocols:

  - A discovery protocol loosely based on SSDP: an "M-SEARCH" query is sent by UDP to the
    multicast group 239.255.255.250:1982, and each appliance answers with an HTTP-like text
    reply whose "Location" header carries its command address, e.g. "yeelight://192.168.1.239:55443".

  - A command protocol over TCP (port 55443): one JSON object per line in each direction. Each
    request carries an id, and the appliance's result carries the same id. Unsolicited
    notifications (state changes) are pushed over the same connection without an id.

The core of this package is YeelightConnection, which correlates results to requests by id
while concurrently delivering notifications, and DiscoveryClient. Yeelight wraps both in
a convenient per-appliance interface.
"""

from .version import __version__

from .internal_types import Jsonable, JsonableDict, HostAndPort

from .exceptions import (
    YeelightError,
    DialError,
    CommandTimeoutError,
    ApplianceError,
    DecodeError,
    ConnectionClosedError,
    NotFoundError,
  )

from .address import DeviceAddress, parse_device_address
from .wire import ErrorInfo, CommandRequest, CommandResult, Notification, encode_request, decode_message
from .discovery_datagram import DiscoveryDatagram
from .discovery import DiscoveryClient, DiscoverySearch, DiscoveryReply, discover
from .notifications import NotificationStream, CancelHandle
from .connection import YeelightConnection, ConnectionState
from .color import rgb_to_yeelight, yeelight_to_rgb, check_brightness
from .flow import Flow, FlowTransition, FlowAction, FlowTransitionMode
from .device import Yeelight, Effect, PowerMode
from .constants import (
    DISCOVERY_MULTICAST_ADDRESS,
    DISCOVERY_PORT,
    DEFAULT_COMMAND_PORT,
    DEFAULT_TIMEOUT,
    DEFAULT_DISCOVERY_TIMEOUT,
  )

__all__ = [
    '__version__',
    'Jsonable', 'JsonableDict', 'HostAndPort',
    'YeelightError', 'DialError', 'CommandTimeoutError', 'ApplianceError',
    'DecodeError', 'ConnectionClosedError', 'NotFoundError',
    'DeviceAddress', 'parse_device_address',
    'ErrorInfo', 'CommandRequest', 'CommandResult', 'Notification', 'encode_request', 'decode_message',
    'DiscoveryDatagram',
    'DiscoveryClient', 'DiscoverySearch', 'DiscoveryReply', 'discover',
    'NotificationStream', 'CancelHandle',
    'YeelightConnection', 'ConnectionState',
    'rgb_to_yeelight', 'yeelight_to_rgb', 'check_brightness',
    'Flow', 'FlowTransition', 'FlowAction', 'FlowTransitionMode',
    'Yeelight', 'Effect', 'PowerMode',
    'DISCOVERY_MULTICAST_ADDRESS', 'DISCOVERY_PORT', 'DEFAULT_COMMAND_PORT',
    'DEFAULT_TIMEOUT', 'DEFAULT_DISCOVERY_TIMEOUT',
]
