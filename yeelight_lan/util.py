#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Simple utility functions used by this package
"""

from __future__ import annotations

from ipaddress import IPv4Address

import netifaces
from requests.structures import CaseInsensitiveDict

from .internal_types import *

def split_bytes_at_lf_or_crlf(data: bytes, maxsplit: SupportsIndex = -1) -> List[bytes]:
    """Split a byte string at LF or CRLF.

    If maxsplit is given, at most maxsplit splits are done.

    Returns a List[bytes] representing the delimiteds lines with the delimiters removed.
    """
    parts = data.split(b'\n', maxsplit)
    if len(parts) > 1:
        for i, part in enumerate(parts[:-1]):
            if part.endswith(b'\r'):
                parts[i] = part[:-1]
    return parts

def parse_http_headers(data: bytes) -> CaseInsensitiveDict[str]:
    """Leniently parse HTTP-style "Name: value" header lines out of a byte string.

    Appliance firmware is not strictly RFC-compliant, so:
        - Lines may be delimited by LF or CRLF.
        - Whitespace around names and values is ignored, including leading whitespace
          that RFC 2822 would treat as a continuation line.
        - Header names are case-insensitive.
        - Lines without a ':' (including blank lines) are ignored.
        - If a header is repeated, the last value wins.

    No decoding of header values is performed. Bytes that are not valid UTF-8 are replaced.

    It is assumed that any preceding statement line (e.g., "HTTP/1.1 200 OK\r\n") has already been removed.
    """
    headers: CaseInsensitiveDict[str] = CaseInsensitiveDict()
    for raw_line in split_bytes_at_lf_or_crlf(data):
        line = raw_line.decode('utf-8', errors='replace')
        name, sep, value = line.partition(':')
        if sep == '':
            continue
        name = name.strip()
        if name == '':
            continue
        headers[name] = value.strip()
    return headers

def encode_http_header(name: str, value: str) -> bytes:
    """Encodes a raw HTTP header name/value pair into a byte string.

    The result is terminated with '\r\n'.
    """
    return f"{name}: {value}\r\n".encode('utf-8')

def get_local_ipv4_addresses_and_interfaces(include_loopback: bool=True) -> List[Tuple[str, str]]:
    """Returns a list of Tuple[ip_address: str, interface_name: str] for the IPv4 addresses of the local host.
       The "preferred" address is placed first:
           1. Addresses on the default gateway interface precede all other addresses.
           2. Addresses that begin with 172. (usually docker bridge networks) follow other addresses.
           3. Loopback addresses come last.
    """
    result_with_priority: List[Tuple[int, str, str]] = []
    _, default_gateway_ifname = get_default_ipv4_gateway()
    for ifname in netifaces.interfaces():
        for addrinfo in netifaces.ifaddresses(ifname).get(netifaces.AF_INET, []):
            ip_str = addrinfo['addr']
            if IPv4Address(ip_str).is_loopback:
                if not include_loopback:
                    continue
                priority = 3
            elif ifname == default_gateway_ifname:
                priority = 0
            elif ip_str.startswith('172.'):
                priority = 2
            else:
                priority = 1
            result_with_priority.append((priority, ip_str, ifname))
    return [ (ip, ifname) for _, ip, ifname in sorted(result_with_priority)]

def get_local_ip_addresses(include_loopback: bool=True) -> List[str]:
    """Returns the IPv4 addresses of the local host, preferred address first.
       See get_local_ipv4_addresses_and_interfaces()."""
    return [ ip for ip, _ in get_local_ipv4_addresses_and_interfaces(include_loopback=include_loopback)]

def get_default_ipv4_gateway() -> Tuple[Optional[str], Optional[str]]:
    """Returns (gateway_ip_address, gateway_interface_name) for the default IPv4 gateway,
       or (None, None) if there is none."""
    default_gateway_infos = netifaces.gateways().get("default", {})
    if netifaces.AF_INET in default_gateway_infos:
        gw_ip, gw_interface_name = default_gateway_infos[netifaces.AF_INET][:2]
        return (gw_ip, gw_interface_name)
    return (None, None)
