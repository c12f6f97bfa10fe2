"""Interface addressing, MTU, routing and IPv6 forwarding controls."""

import array
import fcntl
import socket
import struct
from contextlib import contextmanager
from dataclasses import dataclass, field
from ipaddress import IPv4Address, IPv6Address

from .args import parse_int

SIOCADDRT = 0x890B
SIOCDELRT = 0x890C
SIOCSIFADDR = 0x8916
SIOCSIFDSTADDR = 0x8918
SIOCSIFNETMASK = 0x891C
SIOCGIFMTU = 0x8921
SIOCSIFMTU = 0x8922
SIOCGIFINDEX = 0x8933

RTF_UP = 0x0001
RTF_GATEWAY = 0x0002
RTF_MTU = 0x0020

IF_NAMESIZE = 16
_IFREQ_DATA_LEN = 24

SYSCTL_IPV6_FORWARDING = "/proc/sys/net/ipv6/conf/all/forwarding"

_SOCKADDR_IN = struct.Struct("=HH4s8x")
_INT = struct.Struct("=i")
_IN6_IFREQ = struct.Struct("=16sIi")
# struct rtentry with native alignment, padded to the size of the C structure.
_RTENTRY = struct.Struct("@L16s16s16sHhLBB3hhPLLH0L")


class NetError(Exception):
    """A network configuration operation failed."""


def _ifreq(ifname: str, data: bytes = b"") -> bytes:
    name = ifname.encode()[:IF_NAMESIZE - 1]
    return name.ljust(IF_NAMESIZE, b"\0") + data.ljust(_IFREQ_DATA_LEN, b"\0")


def _sockaddr_in(ip) -> bytes:
    return _SOCKADDR_IN.pack(socket.AF_INET, 0, IPv4Address(ip).packed)


def _ioctl(fd: int, request: int, arg: bytes, name: str) -> bytes:
    try:
        return fcntl.ioctl(fd, request, arg)
    except OSError as exc:
        raise NetError(f"ioctl({name}) failed: {exc.strerror or exc}") from exc


@contextmanager
def _control_socket(family=socket.AF_INET):
    try:
        sock = socket.socket(family, socket.SOCK_DGRAM)
    except OSError as exc:
        raise NetError(f"Failed to create socket for ioctl: {exc.strerror or exc}") from exc
    with sock:
        yield sock


@dataclass
class Route:
    """An IPv4 default route through a gateway on an interface."""

    ifname: str
    gateway: IPv4Address
    metric: int
    mtu: int
    flags: int = RTF_UP | RTF_GATEWAY | RTF_MTU
    _dev: array.array = field(init=False, repr=False, compare=False, default=None)

    def pack(self) -> bytes:
        """Return the kernel rtentry structure for this route.

        The device name buffer stays referenced by the route while it is in use.
        """
        self._dev = array.array("b", self.ifname.encode()[:IF_NAMESIZE - 1] + b"\0")
        any_addr = _sockaddr_in(IPv4Address(0))
        return _RTENTRY.pack(
            0,
            any_addr,
            _sockaddr_in(self.gateway),
            any_addr,
            self.flags,
            0,
            0,
            0,
            0,
            0, 0, 0,
            self.metric + 1,  # the kernel subtracts one from the given metric
            self._dev.buffer_info()[0],
            self.mtu,
            0,
            0,
        )


def set_ip(ifname: str, ip, netmask) -> None:
    """Assign an IPv4 address and netmask to an interface."""
    with _control_socket() as sock:
        _ioctl(sock.fileno(), SIOCSIFADDR, _ifreq(ifname, _sockaddr_in(ip)), "SIOCSIFADDR")
        _ioctl(sock.fileno(), SIOCSIFNETMASK, _ifreq(ifname, _sockaddr_in(netmask)),
               "SIOCSIFNETMASK")


def set_ip6(ifname: str, ip6, prefix: int) -> None:
    """Assign an IPv6 address with the given prefix length to an interface."""
    with _control_socket(socket.AF_INET6) as sock:
        result = _ioctl(sock.fileno(), SIOCGIFINDEX, _ifreq(ifname), "SIOGIFINDEX")
        (index,) = _INT.unpack_from(result, IF_NAMESIZE)
        request = _IN6_IFREQ.pack(IPv6Address(ip6).packed, prefix, index)
        _ioctl(sock.fileno(), SIOCSIFADDR, request, "SIOCSIFADDR")


def set_dest_ip(ifname: str, ip) -> None:
    """Set the peer IPv4 address of a point-to-point interface."""
    with _control_socket() as sock:
        _ioctl(sock.fileno(), SIOCSIFDSTADDR, _ifreq(ifname, _sockaddr_in(ip)),
               "SIOCSIFDSTADDR")


def get_mtu(ifname: str) -> int:
    """Return the MTU of an interface."""
    with _control_socket() as sock:
        result = _ioctl(sock.fileno(), SIOCGIFMTU, _ifreq(ifname), "SIOCGIFMTU")
    (mtu,) = _INT.unpack_from(result, IF_NAMESIZE)
    return mtu


def set_mtu(ifname: str, mtu: int) -> None:
    """Set the MTU of an interface."""
    with _control_socket() as sock:
        _ioctl(sock.fileno(), SIOCSIFMTU, _ifreq(ifname, _INT.pack(mtu)), "SIOCSIFMTU")


def make_route(ifname: str, gateway, metric: int, mtu: int) -> Route:
    """Describe a default IPv4 route via gateway on ifname."""
    return Route(ifname=ifname, gateway=IPv4Address(gateway), metric=metric, mtu=mtu)


def add_route(route: Route) -> None:
    """Install a route in the kernel routing table."""
    with _control_socket() as sock:
        _ioctl(sock.fileno(), SIOCADDRT, route.pack(), "SIOCADDRT")


def del_route(route: Route) -> None:
    """Remove a route from the kernel routing table."""
    with _control_socket() as sock:
        _ioctl(sock.fileno(), SIOCDELRT, route.pack(), "SIOCDELRT")


def set_ipv6_forwarding(state: int, path: str = SYSCTL_IPV6_FORWARDING) -> int:
    """Write the IPv6 forwarding state and return the state it had before."""
    try:
        with open(path, "r+") as sysctl:
            line = sysctl.readline()
            if not line:
                raise NetError("Failed to read previous state")
            try:
                previous = parse_int(line.split("\n", 1)[0])
            except ValueError:
                raise NetError("Failed to parse previous state") from None
            sysctl.seek(0)
            sysctl.write(f"{state}\n")
    except OSError as exc:
        raise NetError(f"Failed to update {path}: {exc.strerror or exc}") from exc
    return previous