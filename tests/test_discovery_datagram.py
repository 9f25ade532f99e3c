import pytest

from yeelight_lan import DeviceAddress, DiscoveryDatagram, parse_device_address
from yeelight_lan.discovery_datagram import parse_location
from yeelight_lan.util import parse_http_headers

from fake_bulb import DEFAULT_REPLY


def test_create_search_query():
    datagram = DiscoveryDatagram.create_search("239.255.255.250", 1982)
    text = datagram.raw_data.decode("utf-8")
    lines = text.split("\r\n")
    assert lines[0] == "M-SEARCH * HTTP/1.1"
    assert "HOST: 239.255.255.250:1982" in lines
    assert 'MAN: "ssdp:discover"' in lines
    assert "ST: wifi_bulb" in lines


def test_parse_reply():
    datagram = DiscoveryDatagram(raw_data=DEFAULT_REPLY)
    assert datagram.is_ok_response
    assert datagram.location == DeviceAddress("192.168.1.239", 55443)
    assert datagram.hdr_id == "0x000000000015243f"
    assert datagram.hdr_model == "color"
    assert datagram.hdr_power == "on"
    assert datagram.hdr_bright == 100
    assert datagram.hdr_rgb == 16711680
    assert datagram.hdr_name == "my_bulb"
    assert "set_rgb" in datagram.hdr_support


def test_parse_reply_is_lenient():
    raw = (
        b"  HTTP/1.1 200 OK\n"
        b"  LOCATION :  yeelight://10.0.0.5:55443 \n"
        b"garbage line with no separator\n"
        b"\n"
        b"power: off\r\n"
        b"POWER: on\r\n"
    )
    datagram = DiscoveryDatagram(raw_data=raw)
    assert datagram.is_ok_response
    assert datagram.location == DeviceAddress("10.0.0.5", 55443)
    assert datagram.hdr_power == "on"
    assert datagram["location"] == "yeelight://10.0.0.5:55443"


def test_location_found_outside_location_header():
    raw = b"HTTP/1.1 200 OK\r\nServer: x\r\nsomething yeelight://10.0.0.9 trailing\r\n"
    assert DiscoveryDatagram(raw_data=raw).location == DeviceAddress("10.0.0.9", 55443)


def test_error_reply_is_not_ok():
    raw = b"HTTP/1.1 404 Not Found\r\nLocation: yeelight://10.0.0.9:55443\r\n"
    assert not DiscoveryDatagram(raw_data=raw).is_ok_response


def test_parse_location():
    assert parse_location("yeelight://192.168.1.2:1234") == DeviceAddress("192.168.1.2", 1234)
    assert parse_location("http://192.168.1.2:1234") is None


def test_parse_http_headers_last_value_wins():
    headers = parse_http_headers(b"a: 1\r\nb: 2\nA: 3\r\n")
    assert headers["a"] == "3"
    assert headers["B"] == "2"


def test_parse_device_address():
    assert parse_device_address("10.0.0.1") == DeviceAddress("10.0.0.1", 55443)
    assert parse_device_address("10.0.0.1:1234") == DeviceAddress("10.0.0.1", 1234)
    assert str(DeviceAddress("10.0.0.1", 1234)) == "10.0.0.1:1234"
    with pytest.raises(ValueError):
        parse_device_address("10.0.0.1:abc")
    with pytest.raises(ValueError):
        parse_device_address(":55443")
