"""Stateless IPv4/IPv6 packet translation for the CLAT side of 464XLAT."""

import logging
from dataclasses import dataclass
from ipaddress import IPv4Address, IPv6Address

from .addr import is_private, map_4to6, prefix_match
from .checksum import ip_checksum
from .headers import (
    FRAG_HEADER_LEN,
    IF_MIN_MTU_V6,
    IP_DF,
    IP_MF,
    IP_OFFMASK,
    IPPROTO_FRAGMENT,
    IPPROTO_ICMP,
    IPPROTO_ICMPV6,
    IPV4_HEADER_LEN,
    IPV6_HEADER_LEN,
    MTU_DIFF,
    FragmentHeader,
    IPv4Header,
    IPv6Header,
)
from .icmp import (
    ICMP6_DST_UNREACH,
    ICMP6_DST_UNREACH_ADMIN,
    ICMP6_PACKET_TOO_BIG,
    ICMP6_TIME_EXCEED_TRANSIT,
    ICMP6_TIME_EXCEEDED,
    ICMP_DEST_UNREACH,
    ICMP_EXC_TTL,
    ICMP_FRAG_NEEDED,
    ICMP_PKT_FILTERED,
    ICMP_TIME_EXCEEDED,
    build_error,
    build_error6,
    translate_4to6,
    translate_6to4,
)
from .trans import TranslationError, header_4to6, header_6to4, payload_4to6, payload_6to4

logger = logging.getLogger(__name__)

DEFAULT_MTU = 1500
DEFAULT_GW = IPv4Address("192.0.0.1")  # RFC 7335
DEFAULT_IP = IPv4Address("192.0.0.2")
DEFAULT_SRC_PREFIX = IPv6Address("fd64::")
DEFAULT_DST_PREFIX = IPv6Address("64:ff9b::")

_FRAG_CHUNK = IF_MIN_MTU_V6 - IPV6_HEADER_LEN - FRAG_HEADER_LEN


@dataclass
class ClatParams:
    """Addresses, prefixes and MTU of the translating interface."""

    if_mtu: int = DEFAULT_MTU
    if_ip: IPv4Address = DEFAULT_IP
    if_gw: IPv4Address = DEFAULT_GW
    src_prefix: IPv6Address = DEFAULT_SRC_PREFIX
    dst_prefix: IPv6Address = DEFAULT_DST_PREFIX
    tunfd: int = -1

    @property
    def if_gw6(self) -> IPv6Address:
        """IPv6 gateway address: the IPv4 gateway inside the source prefix."""
        return map_4to6(self.if_gw, self.src_prefix)


def packet_4to6(params: ClatParams, packet) -> list:
    """Translate an IPv4 packet read from the TUN device.

    Returns the packets to write back: translated IPv6 packets, an ICMP error,
    or nothing when the packet is dropped.
    """
    packet = bytes(packet)
    if len(packet) < IPV4_HEADER_LEN:
        return []
    iphdr = IPv4Header.unpack(packet)
    hdr_len = iphdr.header_len
    if hdr_len < IPV4_HEADER_LEN or hdr_len > len(packet):
        return []
    if iphdr.ttl == 0:
        logger.warning("%s - Dropping packet with expired TTL", iphdr.saddr)
        return []
    if ip_checksum(packet[:hdr_len]) != 0:
        logger.warning("%s - Dropping packet with invalid checksum", iphdr.saddr)
        return []

    if is_private(iphdr.daddr):
        if iphdr.protocol != IPPROTO_ICMP:
            return [build_error(ICMP_DEST_UNREACH, ICMP_PKT_FILTERED,
                                params.if_gw, iphdr.saddr, packet)]
        return []
    if iphdr.ttl == 1:
        return [build_error(ICMP_TIME_EXCEEDED, ICMP_EXC_TTL,
                            params.if_gw, iphdr.saddr, packet)]

    fragmented = iphdr.frag_off & (IP_OFFMASK | IP_MF)
    payload = packet[hdr_len:]

    if iphdr.protocol == IPPROTO_ICMP:
        if fragmented:
            logger.warning("%s - Fragmented ICMPv4 is not supported", iphdr.saddr)
            return []
        result = translate_4to6(params.if_mtu, iphdr, payload,
                                params.src_prefix, params.dst_prefix)
        return [] if result is None else [result]

    if not fragmented and iphdr.frag_off & IP_DF:
        adjusted_mtu = params.if_mtu - MTU_DIFF
        if len(packet) > adjusted_mtu:
            return [build_error(ICMP_DEST_UNREACH, ICMP_FRAG_NEEDED,
                                params.if_gw, params.if_ip, packet, adjusted_mtu)]

    return _write_4to6(iphdr, payload, params.src_prefix, params.dst_prefix)


def packet_6to4(params: ClatParams, packet) -> list:
    """Translate an IPv6 packet read from the TUN device.

    Returns the packets to write back: a translated IPv4 packet, an ICMPv6
    error, or nothing when the packet is dropped.
    """
    packet = bytes(packet)
    if len(packet) < IPV6_HEADER_LEN:
        return []
    ip6hdr = IPv6Header.unpack(packet)
    if ip6hdr.hop_limit == 0:
        return []

    if len(packet) > params.if_mtu:
        return [build_error6(ICMP6_PACKET_TOO_BIG, 0, params.if_gw6, ip6hdr.src,
                             packet, params.if_mtu)]
    if not (prefix_match(ip6hdr.dst, params.dst_prefix)
            or prefix_match(ip6hdr.dst, params.src_prefix)):
        if ip6hdr.next_header != IPPROTO_ICMPV6:
            return [build_error6(ICMP6_DST_UNREACH, ICMP6_DST_UNREACH_ADMIN,
                                 params.if_gw6, ip6hdr.src, packet)]
        return []
    if ip6hdr.hop_limit == 1:
        return [build_error6(ICMP6_TIME_EXCEEDED, ICMP6_TIME_EXCEED_TRANSIT,
                             params.if_gw6, ip6hdr.src, packet)]

    payload = packet[IPV6_HEADER_LEN:]

    if ip6hdr.next_header == IPPROTO_ICMPV6:
        result = translate_6to4(params.if_mtu, ip6hdr, payload,
                                params.src_prefix, params.dst_prefix)
        return [] if result is None else [result]

    frag = None
    if ip6hdr.next_header == IPPROTO_FRAGMENT:
        if len(payload) < FRAG_HEADER_LEN:
            logger.warning("%s - Dropping packet with invalid fragment length", ip6hdr.src)
            return []
        frag = FragmentHeader.unpack(payload)
        if frag.next_header == IPPROTO_ICMPV6:
            logger.warning("%s - Fragmented ICMPv6 is not supported", ip6hdr.src)
            return []
        payload = payload[FRAG_HEADER_LEN:]

    return _write_6to4(ip6hdr, frag, payload, params.src_prefix, params.dst_prefix)


def _write_6to4(ip6hdr, frag, payload, src_prefix, dst_prefix) -> list:
    try:
        iphdr = header_6to4(ip6hdr, frag, len(payload), src_prefix, dst_prefix, True)
    except TranslationError:
        logger.warning("%s - Failed to translate packet header, dropping packet", ip6hdr.src)
        return []

    offset = frag.offset if frag is not None else 0
    if offset == 0:
        # Only the first fragment carries the transport header.
        try:
            payload = payload_6to4(iphdr, ip6hdr, payload)
        except TranslationError:
            logger.warning("%s - Failed to translate packet payload, dropping packet",
                           ip6hdr.src)
            return []

    packet = iphdr.pack() + payload
    logger.debug("%s - IPv6->IPv4 - Len: %d", ip6hdr.src, len(packet))
    return [packet]


def _write_4to6(iphdr, payload, src_prefix, dst_prefix) -> list:
    ip6hdr = header_4to6(iphdr, len(payload), src_prefix, dst_prefix, True)

    flags = iphdr.frag_off & ~IP_OFFMASK
    offset = (iphdr.frag_off & IP_OFFMASK) << 3

    if offset == 0:
        # Only the first fragment carries the transport header.
        try:
            payload = payload_4to6(iphdr, ip6hdr, payload)
        except TranslationError:
            logger.warning("%s - Failed to translate IPv4 packet payload, dropping packet",
                           iphdr.saddr)
            return []

    if flags & IP_MF or offset > 0:
        fragmented = True
    else:
        fragmented = (not flags & IP_DF
                      and IPV6_HEADER_LEN + len(payload) > IF_MIN_MTU_V6)

    if not fragmented:
        packet = ip6hdr.pack() + payload
        logger.debug("%s - IPv4->IPv6 - Len: %d", iphdr.saddr, len(packet))
        return [packet]

    frag = FragmentHeader(next_header=ip6hdr.next_header, ident=iphdr.id)
    ip6hdr.next_header = IPPROTO_FRAGMENT

    packets = []
    for start in range(0, len(payload), _FRAG_CHUNK):
        piece = payload[start:start + _FRAG_CHUNK]
        more = start + _FRAG_CHUNK <= len(payload) or bool(flags & IP_MF)
        ip6hdr.payload_len = len(piece) + FRAG_HEADER_LEN
        frag.offlg = ((offset + start) | int(more)) & 0xFFFF
        packet = ip6hdr.pack() + frag.pack() + piece
        logger.debug("%s - IPv4->IPv6 (frag) - Len: %d", iphdr.saddr, len(packet))
        packets.append(packet)
    return packets