# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Constants used by this package"""

DISCOVERY_MULTICAST_ADDRESS = "239.255.255.250"
"""The multicast address that appliances listen on for discovery queries."""

DISCOVERY_PORT = 1982
"""The UDP port used for discovery queries and replies."""

DISCOVERY_SEARCH_TARGET = "wifi_bulb"
"""The ST header value that appliances respond to."""

DEFAULT_COMMAND_PORT = 55443
"""The TCP port on which an appliance accepts JSON commands."""

DEFAULT_TIMEOUT = 3.0
"""The default amount of time (in seconds) to wait for a command result."""

DEFAULT_CONNECT_TIMEOUT = 3.0
"""The default amount of time (in seconds) to wait for a TCP connection to be established."""

DEFAULT_DISCOVERY_TIMEOUT = 3.0
"""The default amount of time (in seconds) to wait for discovery replies."""

MAX_DATAGRAM_SIZE = 65507
"""The largest UDP payload we will ever receive."""

MAX_LINE_LENGTH = 65536
"""The longest line accepted from an appliance's command connection."""

CRLF = b'\r\n'
"""The line terminator for requests written to the appliance."""

DEFAULT_TRANSITION_DURATION = 500
"""Milliseconds; the transition used when turning on into a specific mode without a duration."""
