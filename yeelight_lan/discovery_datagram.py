#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Abstraction of the HTTP-like text datagrams used by appliance discovery.

A discovery query looks like:

    M-SEARCH * HTTP/1.1
    HOST: 239.255.255.250:1982
    MAN: "ssdp:discover"
    ST: wifi_bulb

and a reply looks like:

    HTTP/1.1 200 OK
    Cache-Control: max-age=3600
    Location: yeelight://192.168.1.239:55443
    id: 0x000000000015243f
    model: color
    fw_ver: 18
    support: get_prop set_default set_power toggle set_bright start_cf stop_cf ...
    power: on
    bright: 100
    color_mode: 2
    ct: 4000
    rgb: 16711680
    hue: 100
    sat: 35
    name: my_bulb

Replies are parsed leniently; see util.parse_http_headers().
"""

from __future__ import annotations

import re

from .internal_types import *
from .constants import DEFAULT_COMMAND_PORT, DISCOVERY_SEARCH_TARGET
from .address import DeviceAddress

from .util import (
    CaseInsensitiveDict,
    split_bytes_at_lf_or_crlf,
    parse_http_headers,
    encode_http_header,
)

_location_re = re.compile(r'yeelight://(?P<host>[^\s:/]+)(?::(?P<port>[0-9]+))?', re.IGNORECASE)

def parse_location(text: str) -> Optional[DeviceAddress]:
    """Scans text for "yeelight://<ip>[:<port>]" and returns the DeviceAddress it names.

    Case and surrounding text are ignored. Returns None if no location is found.
    """
    m = _location_re.search(text)
    if m is None:
        return None
    port_str = m.group('port')
    port = DEFAULT_COMMAND_PORT if port_str is None else int(port_str)
    return DeviceAddress(m.group('host'), port)

class DiscoveryDatagram(Mapping[str, str]):
    """Wrapper for a raw discovery datagram.

    This class provides parsing and formatting of the HTTP-like packets, a read-only
    case-insensitive dict-like interface to the headers, and typed accessors for the
    headers that appliances include in their replies.
    """

    _raw_data: bytes
    """The raw UDP datagram contents"""

    _statement_line: str
    """The first line of the datagram; e.g., "HTTP/1.1 200 OK" or "M-SEARCH * HTTP/1.1"."""

    _headers: CaseInsensitiveDict[str]
    """The undecoded headers. Values have surrounding whitespace removed."""

    def __init__(
            self,
            statement: Optional[str]=None,
            headers: Optional[Mapping[str, str]]=None,
            raw_data: Optional[bytes]=None,
          ):
        if raw_data is None:
            if statement is None:
                raise ValueError("Either statement or raw_data must be provided")
            self._statement_line = statement
            self._headers = CaseInsensitiveDict()
            if headers is not None:
                self._headers.update(headers)
            self._rebuild_raw_data()
        else:
            if not (statement is None and headers is None):
                raise ValueError("If raw_data is provided, statement and headers must be None")
            self.raw_data = raw_data

    @classmethod
    def create_search(cls, host: str, port: int, search_target: str=DISCOVERY_SEARCH_TARGET) -> DiscoveryDatagram:
        """Creates an M-SEARCH query addressed to host:port."""
        # Header order matters to some firmware, so it is preserved as given here.
        return cls(
            "M-SEARCH * HTTP/1.1",
            headers={
                "HOST": f"{host}:{port}",
                "MAN": '"ssdp:discover"',
                "ST": search_target,
              }
          )

    def __str__(self) -> str:
        return f"DiscoveryDatagram('{self._statement_line}', headers={dict(self._headers)})"

    def __repr__(self) -> str:
        return str(self)

    @property
    def raw_data(self) -> bytes:
        """The raw UDP datagram contents"""
        return self._raw_data

    @raw_data.setter
    def raw_data(self, value: bytes) -> None:
        """Set the raw UDP datagram contents, and recompute headers."""
        assert isinstance(value, bytes)
        self._raw_data = value
        statement_and_remainder = split_bytes_at_lf_or_crlf(value.lstrip(), 1)
        self._statement_line = statement_and_remainder[0].decode('utf-8', errors='replace').strip()
        remainder = b'' if len(statement_and_remainder) < 2 else statement_and_remainder[1]
        self._headers = parse_http_headers(remainder)

    @property
    def text(self) -> str:
        """The raw datagram contents decoded as text."""
        return self._raw_data.decode('utf-8', errors='replace')

    @property
    def statement_line(self) -> str:
        return self._statement_line

    @property
    def headers(self) -> CaseInsensitiveDict[str]:
        return self._headers

    @property
    def is_ok_response(self) -> bool:
        """True iff the statement line is an HTTP "200 OK" status line."""
        parts = self._statement_line.split()
        return len(parts) >= 2 and parts[0].upper().startswith('HTTP/') and parts[1] == '200'

    def _rebuild_raw_data(self) -> None:
        raw_data = self._statement_line.encode('utf-8') + b'\r\n'
        for k, v in self._headers.items():
            raw_data += encode_http_header(k, v)
        self._raw_data = raw_data

    def _get_str(self, name: str) -> Optional[str]:
        return self._headers.get(name)

    def _get_int(self, name: str) -> Optional[int]:
        value = self._headers.get(name)
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            pass
        try:
            return int(value, 0)
        except ValueError:
            return None

    @property
    def hdr_location(self) -> Optional[str]:
        """Returns the raw "Location" header, if any."""
        return self._get_str("Location")

    @property
    def location(self) -> Optional[DeviceAddress]:
        """The appliance's command address, taken from the "Location" header.

        If there is no usable Location header, the entire datagram text is scanned for a
        "yeelight://" URL instead. Returns None if no address can be found.
        """
        hdr = self.hdr_location
        result = None if hdr is None else parse_location(hdr)
        if result is None:
            result = parse_location(self.text)
        return result

    @property
    def hdr_id(self) -> Optional[str]:
        """The appliance's unique id, e.g. "0x000000000015243f"."""
        return self._get_str("id")

    @property
    def hdr_model(self) -> Optional[str]:
        return self._get_str("model")

    @property
    def hdr_fw_ver(self) -> Optional[str]:
        return self._get_str("fw_ver")

    @property
    def hdr_support(self) -> Optional[List[str]]:
        """The list of method names the appliance supports."""
        value = self._get_str("support")
        if value is None:
            return None
        return value.split()

    @property
    def hdr_power(self) -> Optional[str]:
        """"on" or "off"."""
        return self._get_str("power")

    @property
    def hdr_bright(self) -> Optional[int]:
        return self._get_int("bright")

    @property
    def hdr_color_mode(self) -> Optional[int]:
        return self._get_int("color_mode")

    @property
    def hdr_ct(self) -> Optional[int]:
        return self._get_int("ct")

    @property
    def hdr_rgb(self) -> Optional[int]:
        return self._get_int("rgb")

    @property
    def hdr_hue(self) -> Optional[int]:
        return self._get_int("hue")

    @property
    def hdr_sat(self) -> Optional[int]:
        return self._get_int("sat")

    @property
    def hdr_name(self) -> Optional[str]:
        return self._get_str("name")

    def __getitem__(self, key: str) -> str:
        return self._headers[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._headers)

    def __len__(self) -> int:
        return len(self._headers)

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, DiscoveryDatagram):
            return False
        return (self._statement_line == other._statement_line and
                dict(self._headers.lower_items()) == dict(other._headers.lower_items()))
