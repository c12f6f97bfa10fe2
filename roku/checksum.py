"""Internet checksum computation and incremental updates for header translation."""

import struct

from .headers import IPv4Header, IPv6Header


def _sum16(data) -> int:
    data = bytes(data)
    if len(data) % 2:
        data += b"\x00"
    return sum(word for (word,) in struct.iter_unpack("!H", data))


def _fold(total: int) -> int:
    while total >> 16:
        total = (total & 0xFFFF) + (total >> 16)
    return total


def _words(addr) -> list:
    return [word for (word,) in struct.iter_unpack("!H", addr.packed)]


def ip_checksum(data) -> int:
    """Return the one's complement checksum of the given bytes (network order value)."""
    return ~_fold(_sum16(data)) & 0xFFFF


def _finish_incremental(total: int) -> int:
    total = (total >> 16) + (total & 0xFFFF)
    total += total >> 16
    return ~total & 0xFFFF


def checksum_4to6(checksum: int, iphdr: IPv4Header, ip6hdr: IPv6Header) -> int:
    """Replace the IPv4 addresses in a transport checksum by the IPv6 ones."""
    total = ~checksum & 0xFFFF
    total += sum(~w & 0xFFFF for w in _words(iphdr.saddr) + _words(iphdr.daddr))
    total += sum(_words(ip6hdr.src) + _words(ip6hdr.dst))
    return _finish_incremental(total)


def checksum_6to4(checksum: int, iphdr: IPv4Header, ip6hdr: IPv6Header) -> int:
    """Replace the IPv6 addresses in a transport checksum by the IPv4 ones."""
    total = ~checksum & 0xFFFF
    total += sum(~w & 0xFFFF for w in _words(ip6hdr.src) + _words(ip6hdr.dst))
    total += sum(_words(iphdr.saddr) + _words(iphdr.daddr))
    return _finish_incremental(total)


def checksum_add(a: int, b: int) -> int:
    """Combine two checksums into the checksum of their concatenated data."""
    total = (~a & 0xFFFF) + (~b & 0xFFFF)
    return ~((total >> 16) + (total & 0xFFFF)) & 0xFFFF


def ip6_pseudo_header_checksum(ip6hdr: IPv6Header, payload_len: int, proto: int) -> int:
    """Return the checksum of the IPv6 pseudo-header."""
    data = (
        ip6hdr.src.packed
        + ip6hdr.dst.packed
        + struct.pack("!II", payload_len & 0xFFFF, proto & 0xFF)
    )
    return ip_checksum(data)