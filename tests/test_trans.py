import struct
from ipaddress import IPv4Address, IPv6Address

import pytest

from roku.addr import map_4to6
from roku.checksum import ip_checksum
from roku.headers import IP_DF, IP_MF, IP_OFFMASK, FragmentHeader, IPv4Header, IPv6Header
from roku.trans import (
    TranslationError,
    header_4to6,
    header_6to4,
    payload_4to6,
    payload_6to4,
)

SRC_PREFIX = IPv6Address("fd64::")
DST_PREFIX = IPv6Address("64:ff9b::")
SRC4 = IPv4Address("192.0.2.1")
DST4 = IPv4Address("198.51.100.7")


def _iphdr(proto, length, ttl=64, tos=0):
    return IPv4Header(tos=tos, tot_len=20 + length, ttl=ttl, protocol=proto,
                      saddr=SRC4, daddr=DST4)


def _v4_pseudo(ip, proto, length):
    return ip.saddr.packed + ip.daddr.packed + struct.pack("!BBH", 0, proto, length)


def _v6_pseudo(ip6, proto, length):
    return ip6.src.packed + ip6.dst.packed + struct.pack("!IxxxB", length, proto)


def _tcp_segment(ip):
    seg = bytearray(struct.pack("!HHIIBBHHH", 40000, 80, 1, 0, 5 << 4, 0x18, 512, 0, 0))
    seg += b"hello world!"
    struct.pack_into("!H", seg, 16, ip_checksum(_v4_pseudo(ip, 6, len(seg)) + seg))
    return bytes(seg)


def _icmp_echo():
    msg = bytearray(struct.pack("!BBHHH", 8, 0, 0, 7, 1) + b"ping data")
    struct.pack_into("!H", msg, 2, ip_checksum(msg))
    return bytes(msg)


def test_header_4to6_fields():
    ip = _iphdr(1, 16, ttl=10, tos=0x28)
    ip6 = header_4to6(ip, 16, SRC_PREFIX, DST_PREFIX, True)
    assert ip6.version == 6
    assert ip6.traffic_class == 0x28
    assert ip6.next_header == 58
    assert ip6.hop_limit == 9
    assert ip6.payload_len == 16
    assert ip6.src == map_4to6(SRC4, SRC_PREFIX)
    assert ip6.dst == map_4to6(DST4, DST_PREFIX)


def test_header_4to6_keeps_ttl_without_decrement():
    ip6 = header_4to6(_iphdr(6, 0, ttl=10), 0, SRC_PREFIX, DST_PREFIX, False)
    assert ip6.hop_limit == 10
    assert ip6.next_header == 6


def test_header_round_trip():
    ip = _iphdr(17, 30, ttl=33, tos=0x10)
    ip6 = header_4to6(ip, 30, SRC_PREFIX, DST_PREFIX, False)
    back = header_6to4(ip6, None, 30, SRC_PREFIX, DST_PREFIX, False)
    assert back.saddr == SRC4
    assert back.daddr == DST4
    assert back.protocol == 17
    assert back.tos == 0x10
    assert back.ttl == 33
    assert back.tot_len == 50
    assert back.frag_off == IP_DF
    assert back.id == 0
    assert ip_checksum(back.pack()) == 0


def test_header_6to4_icmpv6_becomes_icmp():
    ip6 = IPv6Header(next_header=58, hop_limit=5, src=map_4to6(SRC4, SRC_PREFIX),
                     dst=map_4to6(DST4, DST_PREFIX))
    back = header_6to4(ip6, None, 8, SRC_PREFIX, DST_PREFIX, True)
    assert back.protocol == 1
    assert back.ttl == 4


def test_header_6to4_with_fragment():
    ip6 = IPv6Header(next_header=44, src=map_4to6(SRC4, SRC_PREFIX),
                     dst=map_4to6(DST4, DST_PREFIX))
    frag = FragmentHeader(next_header=17, offlg=1480 | 1, ident=0x1234)
    back = header_6to4(ip6, frag, 100, SRC_PREFIX, DST_PREFIX, False)
    assert back.id == 0x1234
    assert back.frag_off & IP_MF
    assert not back.frag_off & IP_DF
    assert back.frag_off & IP_OFFMASK == 1480 // 8
    assert back.protocol == 17
    assert ip_checksum(back.pack()) == 0


def test_header_6to4_untranslatable_address():
    ip6 = IPv6Header(next_header=6, src=IPv6Address("2001:db8::1"),
                     dst=map_4to6(DST4, DST_PREFIX))
    with pytest.raises(TranslationError):
        header_6to4(ip6, None, 20, SRC_PREFIX, DST_PREFIX, True)


def test_tcp_payload_round_trip():
    ip = _iphdr(6, 32)
    seg = _tcp_segment(ip)
    ip6 = header_4to6(ip, len(seg), SRC_PREFIX, DST_PREFIX, True)
    out6 = payload_4to6(ip, ip6, seg)
    assert ip_checksum(_v6_pseudo(ip6, 6, len(out6)) + out6) == 0
    assert out6[:16] == seg[:16] and out6[18:] == seg[18:]

    back = header_6to4(ip6, None, len(out6), SRC_PREFIX, DST_PREFIX, False)
    out4 = payload_6to4(back, ip6, out6)
    assert ip_checksum(_v4_pseudo(back, 6, len(out4)) + out4) == 0


def test_udp_without_checksum_rejected():
    ip = _iphdr(17, 8)
    ip6 = header_4to6(ip, 8, SRC_PREFIX, DST_PREFIX, True)
    with pytest.raises(TranslationError):
        payload_4to6(ip, ip6, struct.pack("!HHHH", 1000, 53, 8, 0))


def test_short_tcp_rejected():
    ip = _iphdr(6, 10)
    ip6 = header_4to6(ip, 10, SRC_PREFIX, DST_PREFIX, True)
    with pytest.raises(TranslationError):
        payload_4to6(ip, ip6, bytes(10))
    with pytest.raises(TranslationError):
        payload_6to4(ip, ip6, bytes(10))


def test_unsupported_protocol_rejected():
    ip = _iphdr(47, 20)
    ip6 = header_4to6(ip, 20, SRC_PREFIX, DST_PREFIX, True)
    with pytest.raises(TranslationError):
        payload_4to6(ip, ip6, bytes(20))


def test_icmp_echo_payload_round_trip():
    msg = _icmp_echo()
    ip = _iphdr(1, len(msg))
    ip6 = header_4to6(ip, len(msg), SRC_PREFIX, DST_PREFIX, False)
    out6 = payload_4to6(ip, ip6, msg)
    assert out6[0] == 128
    assert ip_checksum(_v6_pseudo(ip6, 58, len(out6)) + out6) == 0

    back = header_6to4(ip6, None, len(out6), SRC_PREFIX, DST_PREFIX, False)
    out4 = payload_6to4(back, ip6, out6)
    assert out4[0] == 8
    assert ip_checksum(out4) == 0


def test_icmp_non_echo_rejected():
    msg = bytearray(struct.pack("!BBHI", 3, 1, 0, 0))
    struct.pack_into("!H", msg, 2, ip_checksum(msg))
    ip = _iphdr(1, len(msg))
    ip6 = header_4to6(ip, len(msg), SRC_PREFIX, DST_PREFIX, False)
    with pytest.raises(TranslationError):
        payload_4to6(ip, ip6, bytes(msg))