"""ICMP error generation and ICMP/ICMPv6 message translation."""

import logging
import struct
from ipaddress import IPv4Address, IPv6Address

from .checksum import checksum_add, ip6_pseudo_header_checksum, ip_checksum
from .headers import (
    FRAG_HEADER_LEN,
    IF_MIN_MTU,
    IF_MIN_MTU_V6,
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
from .trans import (
    ICMP6_ECHO_REPLY,
    ICMP6_ECHO_REQUEST,
    ICMP_ECHO,
    ICMP_ECHOREPLY,
    TranslationError,
    header_4to6,
    header_6to4,
    payload_4to6,
    payload_6to4,
)

logger = logging.getLogger(__name__)

ICMP_HEADER_LEN = 8
ICMP6_HEADER_LEN = 8

ICMP_ERROR_LENGTH_MAX = 548
"""Largest ICMP error body so the packet fits the minimum IPv4 MTU."""
ICMP6_ERROR_LENGTH_MAX = 1232
"""Largest ICMPv6 error body so the packet fits the minimum IPv6 MTU."""

# ICMPv4 types
ICMP_DEST_UNREACH = 3
ICMP_TIME_EXCEEDED = 11
ICMP_PARAMETERPROB = 12

# ICMPv4 destination unreachable codes
ICMP_NET_UNREACH = 0
ICMP_HOST_UNREACH = 1
ICMP_PROT_UNREACH = 2
ICMP_PORT_UNREACH = 3
ICMP_FRAG_NEEDED = 4
ICMP_SR_FAILED = 5
ICMP_NET_UNKNOWN = 6
ICMP_HOST_UNKNOWN = 7
ICMP_HOST_ISOLATED = 8
ICMP_NET_ANO = 9
ICMP_HOST_ANO = 10
ICMP_NET_UNR_TOS = 11
ICMP_HOST_UNR_TOS = 12
ICMP_PKT_FILTERED = 13
ICMP_PREC_CUTOFF = 15

# ICMPv4 time exceeded codes
ICMP_EXC_TTL = 0

# ICMPv4 parameter problem codes
ICMP_PARAMPROB_PTRERR = 0
ICMP_PARAMPROB_OPTABSENT = 1
ICMP_PARAMPROB_BADLEN = 2

# ICMPv6 types
ICMP6_DST_UNREACH = 1
ICMP6_PACKET_TOO_BIG = 2
ICMP6_TIME_EXCEEDED = 3
ICMP6_PARAM_PROB = 4

# ICMPv6 destination unreachable codes
ICMP6_DST_UNREACH_NOROUTE = 0
ICMP6_DST_UNREACH_ADMIN = 1
ICMP6_DST_UNREACH_BEYONDSCOPE = 2
ICMP6_DST_UNREACH_ADDR = 3
ICMP6_DST_UNREACH_NOPORT = 4

# ICMPv6 time exceeded codes
ICMP6_TIME_EXCEED_TRANSIT = 0

# ICMPv6 parameter problem codes
ICMP6_PARAMPROB_HEADER = 0
ICMP6_PARAMPROB_NEXTHEADER = 1
ICMP6_PARAMPROB_OPTION = 2

IP6_POINTER_NXT = 6
"""Offset of the next-header field inside an IPv6 header."""

_MTU_TABLE = (65535, 32000, 17914, 8166, 4352, 2002, 1492, 1006, 508, 296)

_UNREACH_NOROUTE_4 = frozenset({
    ICMP_NET_UNREACH,
    ICMP_HOST_UNREACH,
    ICMP_SR_FAILED,
    ICMP_NET_UNKNOWN,
    ICMP_HOST_UNKNOWN,
    ICMP_HOST_ISOLATED,
    ICMP_NET_UNR_TOS,
    ICMP_HOST_UNR_TOS,
})
_UNREACH_ADMIN_4 = frozenset({
    ICMP_NET_ANO,
    ICMP_HOST_ANO,
    ICMP_PKT_FILTERED,
    ICMP_PREC_CUTOFF,
})
_UNREACH_CODES_6TO4 = {
    ICMP6_DST_UNREACH_NOROUTE: ICMP_DEST_UNREACH,
    ICMP6_DST_UNREACH_BEYONDSCOPE: ICMP_DEST_UNREACH,
    ICMP6_DST_UNREACH_ADMIN: ICMP_HOST_ANO,
    ICMP6_DST_UNREACH_NOPORT: ICMP_PORT_UNREACH,
}

_ICMP = struct.Struct("!BBH4s")
_NO_DATA = bytes(4)


def _icmp_header(icmp_type: int, code: int, checksum: int, rest: bytes) -> bytes:
    return _ICMP.pack(icmp_type, code, checksum, rest)


def pmtu_estimate(packet_len: int) -> int:
    """Estimate a path MTU from a packet length using the RFC 1191 plateau table."""
    return next((mtu for mtu in _MTU_TABLE if packet_len > mtu), IF_MIN_MTU)


def build_error(icmp_type, code, src, dst, payload, data=0) -> bytes:
    """Return an IPv4 ICMP error packet quoting the offending packet.

    Raises ValueError when the quoted payload is shorter than an IPv4 header.
    """
    dst = IPv4Address(dst)
    if len(payload) < IPV4_HEADER_LEN:
        raise ValueError(f"{dst} - invalid payload length for ICMP error")
    payload = bytes(payload[:ICMP_ERROR_LENGTH_MAX])

    ip = IPv4Header(
        tos=0,
        tot_len=IPV4_HEADER_LEN + ICMP_HEADER_LEN + len(payload),
        id=0,
        frag_off=0,
        ttl=64,
        protocol=IPPROTO_ICMP,
        saddr=IPv4Address(src),
        daddr=dst,
    )
    ip.check = ip_checksum(ip.pack())

    rest = struct.pack("!I", data & 0xFFFFFFFF)
    check = checksum_add(
        ip_checksum(_icmp_header(icmp_type, code, 0, rest)), ip_checksum(payload))
    packet = ip.pack() + _icmp_header(icmp_type, code, check, rest) + payload
    logger.debug("%s - ICMP error - Len: %d", dst, len(packet))
    return packet


def build_error6(icmp_type, code, src, dst, payload, data=0) -> bytes:
    """Return an ICMPv6 error packet quoting the offending packet.

    Raises ValueError when the quoted payload is shorter than an IPv6 header.
    """
    dst = IPv6Address(dst)
    if len(payload) < IPV6_HEADER_LEN:
        raise ValueError(f"{dst} - invalid payload length for ICMPv6 error")
    payload = bytes(payload[:ICMP6_ERROR_LENGTH_MAX])

    body_len = ICMP6_HEADER_LEN + len(payload)
    ip6 = IPv6Header(
        payload_len=body_len,
        next_header=IPPROTO_ICMPV6,
        hop_limit=64,
        src=IPv6Address(src),
        dst=dst,
    )
    rest = struct.pack("!I", data & 0xFFFFFFFF)
    check = checksum_add(
        ip6_pseudo_header_checksum(ip6, body_len, IPPROTO_ICMPV6),
        ip_checksum(_icmp_header(icmp_type, code, 0, rest)))
    check = checksum_add(check, ip_checksum(payload))
    packet = ip6.pack() + _icmp_header(icmp_type, code, check, rest) + payload
    logger.debug("%s - ICMPv6 error - Len: %d", dst, len(packet))
    return packet


def translate_4to6(tun_mtu, iphdr, payload, src_prefix, dst_prefix) -> bytes | None:
    """Translate an ICMPv4 message into an IPv6 packet, or return None to drop it."""
    if len(payload) < ICMP_HEADER_LEN:
        logger.warning("%s - Dropping truncated ICMP packet", iphdr.saddr)
        return None
    icmp = bytes(payload[:ICMP_HEADER_LEN])
    data = bytes(payload[ICMP_HEADER_LEN:])
    if icmp[0] in (ICMP_ECHOREPLY, ICMP_ECHO):
        return _echo_4to6(iphdr, icmp, data, src_prefix, dst_prefix)
    return _error_4to6(tun_mtu, iphdr, icmp, data, src_prefix, dst_prefix)


def translate_6to4(tun_mtu, ip6hdr, payload, src_prefix, dst_prefix) -> bytes | None:
    """Translate an ICMPv6 message into an IPv4 packet, or return None to drop it."""
    if len(payload) < ICMP6_HEADER_LEN:
        logger.warning("%s - Dropping truncated ICMPv6 packet", ip6hdr.src)
        return None
    icmp6 = bytes(payload[:ICMP6_HEADER_LEN])
    data = bytes(payload[ICMP6_HEADER_LEN:])
    if icmp6[0] in (ICMP6_ECHO_REQUEST, ICMP6_ECHO_REPLY):
        return _echo_6to4(ip6hdr, icmp6, data, src_prefix, dst_prefix)
    return _error_6to4(tun_mtu, ip6hdr, icmp6, data, src_prefix, dst_prefix)


def _map_error_4to6(iphdr: IPv4Header, icmp: bytes):
    """Return (type, code, rest) of the ICMPv6 error for an ICMPv4 error, or None."""
    icmp_type, code = icmp[0], icmp[1]
    if icmp_type == ICMP_DEST_UNREACH:
        if code in _UNREACH_NOROUTE_4:
            return ICMP6_DST_UNREACH, ICMP6_DST_UNREACH_NOROUTE, _NO_DATA
        if code == ICMP_PROT_UNREACH:
            return (ICMP6_PARAM_PROB, ICMP6_PARAMPROB_NEXTHEADER,
                    struct.pack("!I", IP6_POINTER_NXT))
        if code == ICMP_PORT_UNREACH:
            return ICMP6_DST_UNREACH, ICMP6_DST_UNREACH_NOPORT, _NO_DATA
        if code == ICMP_FRAG_NEEDED:
            (mtu,) = struct.unpack_from("!H", icmp, 6)
            if mtu < IF_MIN_MTU:
                mtu = pmtu_estimate(iphdr.tot_len)
            mtu = max(mtu, IF_MIN_MTU_V6) + MTU_DIFF
            return ICMP6_PACKET_TOO_BIG, 0, struct.pack("!I", mtu)
        if code in _UNREACH_ADMIN_4:
            return ICMP6_DST_UNREACH, ICMP6_DST_UNREACH_ADMIN, _NO_DATA
        return None
    if icmp_type == ICMP_TIME_EXCEEDED:
        return ICMP6_TIME_EXCEEDED, code, _NO_DATA
    if icmp_type == ICMP_PARAMETERPROB and code in (ICMP_PARAMPROB_PTRERR, ICMP_PARAMPROB_BADLEN):
        logger.warning("%s - ICMP parameter problem translation is not supported", iphdr.saddr)
    return None


def _error_4to6(tun_mtu, iphdr, icmp, data, src_prefix, dst_prefix):
    if len(data) < IPV4_HEADER_LEN:
        logger.warning("%s - Invalid data length for ICMP error", iphdr.saddr)
        return None

    mapped = _map_error_4to6(iphdr, icmp)
    if mapped is None:
        return None
    new_type, new_code, rest = mapped

    inner = IPv4Header.unpack(data)
    inner_len = inner.header_len
    if inner_len > len(data):
        logger.warning("%s - Invalid ICMP error inner IP header length", iphdr.saddr)
        return None
    inner_payload = data[inner_len:][:ICMP6_ERROR_LENGTH_MAX - IPV6_HEADER_LEN]

    body_len = ICMP6_HEADER_LEN + IPV6_HEADER_LEN + len(inner_payload)
    ip6 = header_4to6(iphdr, body_len, src_prefix, dst_prefix, True)
    inner6 = header_4to6(inner, inner.tot_len - inner_len, src_prefix, dst_prefix, False)
    try:
        inner_payload = payload_4to6(inner, inner6, inner_payload)
    except TranslationError:
        logger.debug("%s - Failed to translate ICMP error inner IP payload, dropping packet",
                      iphdr.saddr)
        return None

    inner6_bytes = inner6.pack()
    check = checksum_add(
        ip6_pseudo_header_checksum(ip6, body_len, IPPROTO_ICMPV6),
        ip_checksum(_icmp_header(new_type, new_code, 0, rest) + inner6_bytes))
    check = checksum_add(check, ip_checksum(inner_payload))

    packet = (ip6.pack() + _icmp_header(new_type, new_code, check, rest)
              + inner6_bytes + inner_payload)
    logger.debug("%s - IPv4->IPv6 (ICMP error) - Len: %d", iphdr.saddr, len(packet))
    return packet


def _echo_4to6(iphdr, icmp, data, src_prefix, dst_prefix):
    new_type = ICMP6_ECHO_REPLY if icmp[0] == ICMP_ECHOREPLY else ICMP6_ECHO_REQUEST
    ident_seq = icmp[4:8]

    body_len = ICMP6_HEADER_LEN + len(data)
    ip6 = header_4to6(iphdr, body_len, src_prefix, dst_prefix, True)
    check = checksum_add(
        ip6_pseudo_header_checksum(ip6, body_len, IPPROTO_ICMPV6),
        ip_checksum(_icmp_header(new_type, 0, 0, ident_seq)))
    check = checksum_add(check, ip_checksum(data))

    packet = ip6.pack() + _icmp_header(new_type, 0, check, ident_seq) + data
    logger.debug("%s - IPv4->IPv6 (ICMP echo) - Len: %d", iphdr.saddr, len(packet))
    return packet


def _map_error_6to4(tun_mtu: int, ip6hdr: IPv6Header, icmp6: bytes):
    """Return (type, code, rest) of the ICMPv4 error for an ICMPv6 error, or None."""
    icmp_type, code = icmp6[0], icmp6[1]
    if icmp_type == ICMP6_DST_UNREACH:
        new_code = _UNREACH_CODES_6TO4.get(code)
        if new_code is None:
            return None
        return ICMP_DEST_UNREACH, new_code, _NO_DATA
    if icmp_type == ICMP6_PACKET_TOO_BIG:
        (mtu,) = struct.unpack_from("!i", icmp6, 4)
        mtu = min(mtu, tun_mtu) - MTU_DIFF
        return ICMP_DEST_UNREACH, ICMP_FRAG_NEEDED, struct.pack("!HH", 0, mtu & 0xFFFF)
    if icmp_type == ICMP6_TIME_EXCEEDED:
        return ICMP_TIME_EXCEEDED, code, _NO_DATA
    if icmp_type == ICMP6_PARAM_PROB:
        if code == ICMP6_PARAMPROB_NEXTHEADER:
            return ICMP_DEST_UNREACH, ICMP_PROT_UNREACH, _NO_DATA
        if code == ICMP6_PARAMPROB_HEADER:
            logger.warning("%s - ICMPv6 parameter problem translation is not supported",
                           ip6hdr.src)
    return None


def _error_6to4(tun_mtu, ip6hdr, icmp6, data, src_prefix, dst_prefix):
    if len(data) < IPV6_HEADER_LEN:
        return None

    mapped = _map_error_6to4(tun_mtu, ip6hdr, icmp6)
    if mapped is None:
        return None
    new_type, new_code, rest = mapped

    inner6 = IPv6Header.unpack(data)
    inner_payload = data[IPV6_HEADER_LEN:][:ICMP_ERROR_LENGTH_MAX - IPV4_HEADER_LEN]
    inner_plen = inner6.payload_len

    inner_frag = None
    if inner6.next_header == IPPROTO_FRAGMENT:
        if len(inner_payload) < FRAG_HEADER_LEN:
            logger.warning("%s - Dropping ICMPv6 error packet with invalid inner packet size",
                           ip6hdr.src)
            return None
        inner_frag = FragmentHeader.unpack(inner_payload)
        inner_payload = inner_payload[FRAG_HEADER_LEN:]
        inner_plen = (inner_plen - FRAG_HEADER_LEN) & 0xFFFF

    body_len = ICMP_HEADER_LEN + IPV4_HEADER_LEN + len(inner_payload)
    try:
        ip = header_6to4(ip6hdr, None, body_len, src_prefix, dst_prefix, True)
    except TranslationError:
        logger.warning("%s - Failed to translate ICMPv6 error header, dropping packet",
                       ip6hdr.src)
        return None
    try:
        inner = header_6to4(inner6, inner_frag, inner_plen, src_prefix, dst_prefix, False)
        inner_payload = payload_6to4(inner, inner6, inner_payload)
    except TranslationError:
        logger.warning("%s - Failed to translate ICMPv6 error inner IP packet, dropping packet",
                       ip6hdr.src)
        return None

    inner_bytes = inner.pack()
    check = checksum_add(
        ip_checksum(_icmp_header(new_type, new_code, 0, rest) + inner_bytes),
        ip_checksum(inner_payload))

    packet = (ip.pack() + _icmp_header(new_type, new_code, check, rest)
              + inner_bytes + inner_payload)
    logger.debug("%s - IPv6->IPv4 (ICMP error) - Len: %d", ip6hdr.src, len(packet))
    return packet


def _echo_6to4(ip6hdr, icmp6, data, src_prefix, dst_prefix):
    new_type = ICMP_ECHO if icmp6[0] == ICMP6_ECHO_REQUEST else ICMP_ECHOREPLY
    ident_seq = icmp6[4:8]

    try:
        ip = header_6to4(ip6hdr, None, ICMP_HEADER_LEN + len(data),
                         src_prefix, dst_prefix, True)
    except TranslationError:
        logger.warning("%s - Failed to translate ICMP echo header, dropping packet", ip6hdr.src)
        return None

    check = checksum_add(
        ip_checksum(_icmp_header(new_type, 0, 0, ident_seq)), ip_checksum(data))
    packet = ip.pack() + _icmp_header(new_type, 0, check, ident_seq) + data
    logger.debug("%s - IPv6->IPv4 (ICMP echo) - Len: %d", ip6hdr.src, len(packet))
    return packet