"""Creation and activation of the TUN device."""

import os
import struct

from .net import IF_NAMESIZE, NetError, _control_socket, _ifreq, _ioctl

TUN_DEV = "/dev/net/tun"

TUNSETIFF = 0x400454CA
IFF_TUN = 0x0001
IFF_NO_PI = 0x1000

SIOCGIFFLAGS = 0x8913
SIOCSIFFLAGS = 0x8914
IFF_UP = 0x0001
IFF_RUNNING = 0x0040

_FLAGS = struct.Struct("=H")


def open_tun(preferred_name: str):
    """Create a TUN device and return its descriptor and the name the kernel gave it."""
    try:
        fd = os.open(TUN_DEV, os.O_RDWR)
    except OSError as exc:
        raise NetError(f"Failed to open {TUN_DEV}: {exc.strerror or exc}") from exc
    try:
        request = _ifreq(preferred_name, _FLAGS.pack(IFF_TUN | IFF_NO_PI))
        result = _ioctl(fd, TUNSETIFF, request, "TUNSETIFF")
    except NetError:
        os.close(fd)
        raise
    name = bytes(result[:IF_NAMESIZE]).split(b"\0", 1)[0].decode(errors="replace")
    return fd, name


def tun_up(ifname: str) -> None:
    """Mark an interface as up and running."""
    with _control_socket() as sock:
        result = _ioctl(sock.fileno(), SIOCGIFFLAGS, _ifreq(ifname), "SIOCGIFFLAGS")
        (flags,) = _FLAGS.unpack_from(result, IF_NAMESIZE)
        flags = (flags | IFF_UP | IFF_RUNNING) & 0xFFFF
        _ioctl(sock.fileno(), SIOCSIFFLAGS, _ifreq(ifname, _FLAGS.pack(flags)), "SIOCSIFFLAGS")