"""Address helpers for NAT64 prefix mapping."""

from ipaddress import IPv4Address, IPv4Network, IPv6Address

_LOW32 = 0xFFFFFFFF

_PRIVATE_NETWORKS = tuple(
    IPv4Network(net)
    for net in (
        "0.0.0.0/8",  # private
        "10.0.0.0/8",  # private
        "100.64.0.0/10",  # shared
        "127.0.0.0/8",  # host
        "169.254.0.0/16",  # link-local
        "172.16.0.0/12",  # private
        "192.0.0.0/24",  # private
        "192.0.2.0/24",  # TEST-NET-1
        "192.88.99.0/24",  # reserved (6to4)
        "192.168.0.0/16",  # private
        "198.18.0.0/15",  # private
        "198.51.100.0/24",  # TEST-NET-2
        "203.0.113.0/24",  # TEST-NET-3
        "224.0.0.0/4",  # multicast
        "240.0.0.0/4",  # reserved, includes the broadcast address
    )
)


def prefix_match(a, b) -> bool:
    """Return whether the /96 prefixes of two IPv6 addresses are equal."""
    return int(IPv6Address(a)) >> 32 == int(IPv6Address(b)) >> 32


def prefix_valid(addr) -> bool:
    """Return whether an address is usable as a /96 NAT64 prefix."""
    return int(IPv6Address(addr)) & _LOW32 == 0


def map_6to4(ip6, src_prefix, dst_prefix) -> IPv4Address:
    """Extract the IPv4 address embedded in an IPv6 address from either prefix.

    Raises ValueError when the address belongs to neither prefix.
    """
    ip6 = IPv6Address(ip6)
    if prefix_match(ip6, src_prefix) or prefix_match(ip6, dst_prefix):
        return IPv4Address(int(ip6) & _LOW32)
    raise ValueError(f"{ip6} is not within a NAT64 prefix")


def map_4to6(ip, prefix) -> IPv6Address:
    """Embed an IPv4 address into the given /96 prefix."""
    high = int(IPv6Address(prefix)) & ~_LOW32
    return IPv6Address(high | int(IPv4Address(ip)))


def is_private(ip) -> bool:
    """Return whether an IPv4 address is private, reserved or otherwise non-global."""
    ip = IPv4Address(ip)
    return any(ip in net for net in _PRIVATE_NETWORKS)