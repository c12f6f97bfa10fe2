"""Command line parsing."""

import getopt
import re
from dataclasses import dataclass, field
from ipaddress import IPv4Address, IPv6Address

from .addr import prefix_valid
from .clat import (
    DEFAULT_DST_PREFIX,
    DEFAULT_GW,
    DEFAULT_IP,
    DEFAULT_MTU,
    DEFAULT_SRC_PREFIX,
    ClatParams,
)
from .log import LogLevel

DEFAULT_TUN_NAME = "roku"
MTU_MIN = 1280
MTU_MAX = 65535

_INT_MIN = -(2 ** 31)
_INT_MAX = 2 ** 31 - 1
_INT_RE = re.compile(r"[ \t\n\v\f\r]*([+-]?[0-9]+)")

_OPTSTRING = "hI:i:g:s:d:m:RFWv"

_USAGE = (
    "Usage: {prog} [OPTION...]\n"
    "\n"
    "Options:\n"
    "   -I <Interface>    interface name (default: {tun})\n"
    "   -i <IP>           interface IPv4 address (default: {ip})\n"
    "   -g <IP>           interface gateway IPv4 address (default: {gw})\n"
    "   -s <IPv6 prefix>  CLAT IPv6 source prefix (default: {src}/96)\n"
    "   -d <IPv6 prefix>  CLAT IPv6 destination (NAT64) prefix (default: {dst}/96)\n"
    "   -m <MTU>          interface MTU (default: {mtu})\n"
    "   -R                do not add default IPv4 route\n"
    "   -F                do not add firewall rules for NAT & forward\n"
    "   -W                do not enable IPv6 forwarding\n"
    "   -v                verbose logging\n"
    "   -h                show this help message\n"
)


class ArgsError(ValueError):
    """The command line is invalid."""


@dataclass
class Args:
    """Settings taken from the command line."""

    tun_name: str = DEFAULT_TUN_NAME
    clat: ClatParams = field(default_factory=ClatParams)
    log_level: LogLevel = LogLevel.INFO
    add_route: bool = True
    add_fw_rules: bool = True
    enable_ip_fwd: bool = True


def parse_int(text: str) -> int:
    """Parse a decimal C int, allowing leading whitespace and a sign.

    Raises ValueError on trailing characters or a value outside the int range.
    """
    if text == "":
        return 0
    match = _INT_RE.fullmatch(text)
    if match is None:
        raise ValueError(f"invalid integer {text!r}")
    value = int(match.group(1))
    if not _INT_MIN <= value <= _INT_MAX:
        raise ValueError(f"integer {text!r} out of range")
    return value


def usage(progname: str) -> str:
    """Return the help text."""
    return _USAGE.format(
        prog=progname,
        tun=DEFAULT_TUN_NAME,
        ip=DEFAULT_IP,
        gw=DEFAULT_GW,
        src=DEFAULT_SRC_PREFIX,
        dst=DEFAULT_DST_PREFIX,
        mtu=DEFAULT_MTU,
    )


def _ipv4(text: str, what: str) -> IPv4Address:
    try:
        return IPv4Address(text)
    except ValueError:
        raise ArgsError(f'invalid {what} "{text}"') from None


def _prefix(text: str, what: str) -> IPv6Address:
    try:
        if "%" in text:
            raise ValueError(text)
        addr = IPv6Address(text)
    except ValueError:
        raise ArgsError(f'invalid {what} "{text}"') from None
    if not prefix_valid(addr):
        raise ArgsError(f'invalid {what} "{text}"')
    return addr


def _mtu(text: str) -> int:
    try:
        mtu = parse_int(text)
    except ValueError:
        raise ArgsError(f'invalid MTU "{text}"') from None
    if not MTU_MIN <= mtu <= MTU_MAX:
        raise ArgsError(f"MTU must be between {MTU_MIN} and {MTU_MAX}")
    return mtu


def parse_args(argv) -> Args | None:
    """Parse command line options (without the program name).

    Returns None when help was requested; raises ArgsError on invalid input.
    """
    try:
        opts, _ = getopt.gnu_getopt(list(argv), _OPTSTRING)
    except getopt.GetoptError as exc:
        raise ArgsError(exc.msg) from None

    args = Args()
    clat = args.clat
    for opt, value in opts:
        if opt == "-h":
            return None
        if opt == "-I":
            args.tun_name = value
        elif opt == "-i":
            clat.if_ip = _ipv4(value, "IPv4 address")
        elif opt == "-g":
            clat.if_gw = _ipv4(value, "IPv4 gateway address")
        elif opt == "-s":
            clat.src_prefix = _prefix(value, "IPv6 source prefix")
        elif opt == "-d":
            clat.dst_prefix = _prefix(value, "IPv6 destination prefix")
        elif opt == "-m":
            clat.if_mtu = _mtu(value)
        elif opt == "-R":
            args.add_route = False
        elif opt == "-F":
            args.add_fw_rules = False
        elif opt == "-W":
            args.enable_ip_fwd = False
        elif opt == "-v":
            args.log_level = LogLevel.DEBUG
    return args