"""Translation of IP headers and transport payload checksums between IPv4 and IPv6."""

import struct

from .addr import map_4to6, map_6to4
from .checksum import (
    checksum_4to6,
    checksum_6to4,
    checksum_add,
    ip6_pseudo_header_checksum,
    ip_checksum,
)
from .headers import (
    IP_DF,
    IP_MF,
    IPPROTO_ICMP,
    IPPROTO_ICMPV6,
    IPPROTO_TCP,
    IPPROTO_UDP,
    IPV4_HEADER_LEN,
    FragmentHeader,
    IPv4Header,
    IPv6Header,
)

TCP_HEADER_LEN = 20
UDP_HEADER_LEN = 8
ICMP_HEADER_LEN = 8

_TCP_CHECK = 16
_UDP_CHECK = 6
_ICMP_CHECK = 2

ICMP_ECHOREPLY = 0
ICMP_ECHO = 8
ICMP6_ECHO_REQUEST = 128
ICMP6_ECHO_REPLY = 129

_ECHO_4TO6 = {ICMP_ECHOREPLY: ICMP6_ECHO_REPLY, ICMP_ECHO: ICMP6_ECHO_REQUEST}
_ECHO_6TO4 = {ICMP6_ECHO_REQUEST: ICMP_ECHO, ICMP6_ECHO_REPLY: ICMP_ECHOREPLY}


class TranslationError(ValueError):
    """A packet cannot be translated and must be dropped."""


def _require(payload, size: int) -> None:
    if len(payload) < size:
        raise TranslationError(f"payload of {len(payload)} bytes is shorter than {size}")


def _ttl(value: int, dec_ttl: bool) -> int:
    return (value - 1) & 0xFF if dec_ttl else value


def header_4to6(iphdr: IPv4Header, payload_len: int, src_prefix, dst_prefix,
                dec_ttl: bool) -> IPv6Header:
    """Build the IPv6 header corresponding to an IPv4 header."""
    proto = IPPROTO_ICMPV6 if iphdr.protocol == IPPROTO_ICMP else iphdr.protocol
    return IPv6Header(
        traffic_class=iphdr.tos,
        flow_label=0,
        payload_len=payload_len & 0xFFFF,
        next_header=proto,
        hop_limit=_ttl(iphdr.ttl, dec_ttl),
        src=map_4to6(iphdr.saddr, src_prefix),
        dst=map_4to6(iphdr.daddr, dst_prefix),
    )


def _retype_icmp(out: bytearray, checksum: int, mapping: dict, to_v6: bool) -> int:
    old_type = out[0]
    try:
        new_type = mapping[old_type]
    except KeyError:
        raise TranslationError(f"unsupported ICMP type {old_type}") from None
    out[0] = new_type
    if to_v6:
        return checksum_add(checksum, ~((new_type - old_type) << 8) & 0xFFFF)
    return checksum_add(checksum, ((old_type - new_type) << 8) & 0xFFFF)


def payload_4to6(iphdr: IPv4Header, ip6hdr: IPv6Header, payload) -> bytes:
    """Return the payload with its transport checksum adjusted for IPv6."""
    out = bytearray(payload)
    proto = iphdr.protocol
    if proto == IPPROTO_TCP:
        _require(out, TCP_HEADER_LEN)
        (check,) = struct.unpack_from("!H", out, _TCP_CHECK)
        struct.pack_into("!H", out, _TCP_CHECK, checksum_4to6(check, iphdr, ip6hdr))
    elif proto == IPPROTO_UDP:
        _require(out, UDP_HEADER_LEN)
        (check,) = struct.unpack_from("!H", out, _UDP_CHECK)
        if check == 0:
            raise TranslationError("UDP packets without checksum are dropped")
        struct.pack_into("!H", out, _UDP_CHECK, checksum_4to6(check, iphdr, ip6hdr))
    elif proto == IPPROTO_ICMP:
        _require(out, ICMP_HEADER_LEN)
        (check,) = struct.unpack_from("!H", out, _ICMP_CHECK)
        check = checksum_add(
            check, ip6_pseudo_header_checksum(ip6hdr, ip6hdr.payload_len, IPPROTO_ICMPV6))
        check = _retype_icmp(out, check, _ECHO_4TO6, to_v6=True)
        struct.pack_into("!H", out, _ICMP_CHECK, check)
    else:
        raise TranslationError(f"unsupported protocol {proto}")
    return bytes(out)


def header_6to4(ip6hdr: IPv6Header, frag: FragmentHeader | None, payload_len: int,
                src_prefix, dst_prefix, dec_ttl: bool) -> IPv4Header:
    """Build the IPv4 header corresponding to an IPv6 header and optional fragment header."""
    if frag is not None:
        ident = frag.ident & 0xFFFF
        frag_off = frag.offlg >> 3
        if frag.more_fragments:
            frag_off |= IP_MF
        next_header = frag.next_header
    else:
        ident = 0
        frag_off = IP_DF
        next_header = ip6hdr.next_header
    try:
        daddr = map_6to4(ip6hdr.dst, src_prefix, dst_prefix)
        saddr = map_6to4(ip6hdr.src, src_prefix, dst_prefix)
    except ValueError as exc:
        raise TranslationError(str(exc)) from exc
    hdr = IPv4Header(
        tos=ip6hdr.traffic_class,
        tot_len=(payload_len + IPV4_HEADER_LEN) & 0xFFFF,
        id=ident,
        frag_off=frag_off,
        ttl=_ttl(ip6hdr.hop_limit, dec_ttl),
        protocol=IPPROTO_ICMP if next_header == IPPROTO_ICMPV6 else next_header,
        check=0,
        saddr=saddr,
        daddr=daddr,
    )
    hdr.check = ip_checksum(hdr.pack())
    return hdr


def payload_6to4(iphdr: IPv4Header, ip6hdr: IPv6Header, payload) -> bytes:
    """Return the payload with its transport checksum adjusted for IPv4."""
    out = bytearray(payload)
    proto = iphdr.protocol
    if proto == IPPROTO_TCP:
        _require(out, TCP_HEADER_LEN)
        (check,) = struct.unpack_from("!H", out, _TCP_CHECK)
        struct.pack_into("!H", out, _TCP_CHECK, checksum_6to4(check, iphdr, ip6hdr))
    elif proto == IPPROTO_UDP:
        _require(out, UDP_HEADER_LEN)
        (check,) = struct.unpack_from("!H", out, _UDP_CHECK)
        struct.pack_into("!H", out, _UDP_CHECK, checksum_6to4(check, iphdr, ip6hdr))
    elif proto == IPPROTO_ICMP:
        _require(out, ICMP_HEADER_LEN)
        (check,) = struct.unpack_from("!H", out, _ICMP_CHECK)
        pseudo = ip6_pseudo_header_checksum(ip6hdr, ip6hdr.payload_len, IPPROTO_ICMPV6)
        check = checksum_add(check, ~pseudo & 0xFFFF)
        check = _retype_icmp(out, check, _ECHO_6TO4, to_v6=False)
        struct.pack_into("!H", out, _ICMP_CHECK, check)
    else:
        raise TranslationError(f"unsupported protocol {proto}")
    return bytes(out)