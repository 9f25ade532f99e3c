import netifaces
import pytest

from yeelight_lan import util


@pytest.fixture
def fake_interfaces(monkeypatch):
    addresses = {
        "lo": {netifaces.AF_INET: [{"addr": "127.0.0.1"}]},
        "docker0": {netifaces.AF_INET: [{"addr": "172.17.0.1"}]},
        "wlan0": {netifaces.AF_INET: [{"addr": "10.0.0.7"}]},
        "eth0": {netifaces.AF_INET: [{"addr": "192.168.1.5"}]},
        "tun0": {},
    }
    monkeypatch.setattr(util.netifaces, "interfaces", lambda: list(addresses))
    monkeypatch.setattr(util.netifaces, "ifaddresses", lambda ifname: addresses[ifname])
    monkeypatch.setattr(
        util.netifaces, "gateways", lambda: {"default": {netifaces.AF_INET: ("192.168.1.1", "eth0")}}
    )


def test_local_addresses_preferred_first(fake_interfaces):
    assert util.get_local_ip_addresses() == ["192.168.1.5", "10.0.0.7", "172.17.0.1", "127.0.0.1"]


def test_local_addresses_without_loopback(fake_interfaces):
    assert util.get_local_ip_addresses(include_loopback=False) == ["192.168.1.5", "10.0.0.7", "172.17.0.1"]


def test_default_gateway(fake_interfaces):
    assert util.get_default_ipv4_gateway() == ("192.168.1.1", "eth0")


def test_no_default_gateway(monkeypatch):
    monkeypatch.setattr(util.netifaces, "gateways", lambda: {})
    assert util.get_default_ipv4_gateway() == (None, None)
