import errno
import struct
from ipaddress import IPv4Address, IPv6Address
from unittest import mock

import pytest

from roku.net import (
    RTF_GATEWAY,
    RTF_MTU,
    RTF_UP,
    SIOCADDRT,
    SIOCDELRT,
    SIOCGIFINDEX,
    SIOCGIFMTU,
    SIOCSIFADDR,
    SIOCSIFDSTADDR,
    SIOCSIFMTU,
    SIOCSIFNETMASK,
    NetError,
    add_route,
    del_route,
    get_mtu,
    make_route,
    set_dest_ip,
    set_ip,
    set_ip6,
    set_ipv6_forwarding,
    set_mtu,
)


def _echo(fd, request, arg):
    return bytes(arg)


class _FakeKernel:
    """Keeps interface MTUs keyed by the raw 16-byte interface name."""

    def __init__(self):
        self.mtus = {}

    def __call__(self, fd, request, arg):
        arg = bytes(arg)
        name = arg[:16]
        if request == SIOCSIFMTU:
            self.mtus[name] = struct.unpack_from("=i", arg, 16)[0]
            return arg
        if request == SIOCGIFMTU:
            if name not in self.mtus:
                raise OSError(errno.ENODEV, "No such device")
            return arg[:16] + struct.pack("=i", self.mtus[name]) + arg[20:]
        return arg


def test_set_mtu_sends_name_and_value():
    kernel = _FakeKernel()
    with mock.patch("fcntl.ioctl", side_effect=kernel) as ioctl:
        set_mtu("roku", 1400)
        _, request, arg = ioctl.call_args.args
        assert get_mtu("roku") == 1400
    assert request == SIOCSIFMTU
    assert arg[:5] == b"roku\0"
    assert struct.unpack_from("=i", arg, 16)[0] == 1400


def test_long_interface_name_is_truncated():
    kernel = _FakeKernel()
    with mock.patch("fcntl.ioctl", side_effect=kernel) as ioctl:
        set_mtu("a" * 20, 1400)
        arg = ioctl.call_args.args[2]
        assert get_mtu("a" * 15) == 1400
    assert arg[:16] == b"a" * 15 + b"\0"


def test_get_mtu_reads_value():
    def fake(fd, request, arg):
        return bytes(arg[:16]) + struct.pack("=i", 1400) + bytes(arg[20:])

    with mock.patch("fcntl.ioctl", side_effect=fake) as ioctl:
        assert get_mtu("roku") == 1400
    assert ioctl.call_args.args[1] == SIOCGIFMTU


def test_get_mtu_of_missing_interface():
    with pytest.raises(NetError):
        get_mtu("nonexist0")


def test_set_ip_sets_address_then_netmask():
    with mock.patch("fcntl.ioctl", side_effect=_echo) as ioctl:
        set_ip("roku", IPv4Address("192.0.0.2"), IPv4Address("255.255.255.255"))
    calls = ioctl.call_args_list
    assert [c.args[1] for c in calls] == [SIOCSIFADDR, SIOCSIFNETMASK]
    assert calls[0].args[2][20:24] == IPv4Address("192.0.0.2").packed
    assert calls[1].args[2][20:24] == b"\xff" * 4


def test_set_ip_failure_raises():
    error = PermissionError(errno.EPERM, "Operation not permitted")
    with mock.patch("fcntl.ioctl", side_effect=error):
        with pytest.raises(NetError):
            set_ip("roku", "192.0.0.2", "255.255.255.255")


def test_set_ip6_uses_interface_index():
    def fake(fd, request, arg):
        if request == SIOCGIFINDEX:
            return bytes(arg[:16]) + struct.pack("=i", 7) + bytes(arg[20:])
        return bytes(arg)

    ip6 = IPv6Address("fd64::c000:1")
    with mock.patch("fcntl.ioctl", side_effect=fake) as ioctl:
        set_ip6("roku", ip6, 96)
    _, request, arg = ioctl.call_args.args
    assert request == SIOCSIFADDR
    assert struct.unpack("=16sIi", arg) == (ip6.packed, 96, 7)


def test_set_dest_ip():
    with mock.patch("fcntl.ioctl", side_effect=_echo) as ioctl:
        set_dest_ip("roku", "192.0.0.1")
    _, request, arg = ioctl.call_args.args
    assert request == SIOCSIFDSTADDR
    assert arg[20:24] == IPv4Address("192.0.0.1").packed

    error = OSError(errno.ENODEV, "No such device")
    with mock.patch("fcntl.ioctl", side_effect=error):
        with pytest.raises(NetError):
            set_dest_ip("nonexist0", "192.0.0.1")


def test_make_route_fields():
    route = make_route("roku", "192.0.0.1", 2000, 1480)
    assert route.gateway == IPv4Address("192.0.0.1")
    assert route.metric == 2000
    assert route.mtu == 1480
    assert route.flags == RTF_UP | RTF_GATEWAY | RTF_MTU


def test_route_pack_contains_gateway_and_is_stable_in_size():
    route = make_route("roku", "192.0.0.1", 2000, 1480)
    first = route.pack()
    second = route.pack()
    assert IPv4Address("192.0.0.1").packed in first
    assert len(first) == len(second)


def test_add_and_delete_route_requests():
    route = make_route("roku", "192.0.0.1", 2000, 1480)
    with mock.patch("fcntl.ioctl", side_effect=_echo) as ioctl:
        add_route(route)
        del_route(route)
    requests = [c.args[1] for c in ioctl.call_args_list]
    assert requests == [SIOCADDRT, SIOCDELRT]
    assert len(ioctl.call_args_list[0].args[2]) == len(route.pack())


def test_add_route_failure_raises():
    route = make_route("nonexist0", "192.0.0.1", 2000, 1480)
    error = OSError(errno.ENODEV, "No such device")
    with mock.patch("fcntl.ioctl", side_effect=error):
        with pytest.raises(NetError):
            add_route(route)


def test_ipv6_forwarding_returns_previous_and_writes(tmp_path):
    path = tmp_path / "forwarding"
    path.write_text("0\n")
    assert set_ipv6_forwarding(1, str(path)) == 0
    assert path.read_text() == "1\n"
    assert set_ipv6_forwarding(0, str(path)) == 1
    assert path.read_text() == "0\n"


def test_ipv6_forwarding_missing_file(tmp_path):
    with pytest.raises(NetError):
        set_ipv6_forwarding(1, str(tmp_path / "missing"))


def test_ipv6_forwarding_unparseable(tmp_path):
    path = tmp_path / "forwarding"
    path.write_text("yes\n")
    with pytest.raises(NetError):
        set_ipv6_forwarding(1, str(path))
    assert path.read_text() == "yes\n"


def test_ipv6_forwarding_empty_file(tmp_path):
    path = tmp_path / "forwarding"
    path.write_text("")
    with pytest.raises(NetError):
        set_ipv6_forwarding(1, str(path))