"""IPv4, IPv6 and IPv6 fragment headers with their wire encodings."""

import struct
from dataclasses import dataclass, field
from ipaddress import IPv4Address, IPv6Address

IPPROTO_ICMP = 1
IPPROTO_TCP = 6
IPPROTO_UDP = 17
IPPROTO_FRAGMENT = 44
IPPROTO_ICMPV6 = 58

IP_DF = 0x4000
IP_MF = 0x2000
IP_OFFMASK = 0x1FFF

IP6F_OFF_MASK = 0xFFF8
IP6F_MORE_FRAG = 0x0001

IF_MIN_MTU = 68
"""Minimum possible MTU."""
IF_MIN_MTU_V6 = 1280
"""Minimum MTU for IPv6."""
MTU_DIFF = 20
"""Size difference between IPv6 and IPv4 headers (without a fragment header)."""

IPV4_HEADER_LEN = 20
IPV6_HEADER_LEN = 40
FRAG_HEADER_LEN = 8

_IPV4 = struct.Struct("!BBHHHBBH4s4s")
_IPV6 = struct.Struct("!IHBB16s16s")
_FRAG = struct.Struct("!BBHI")


def _check_length(data, size: int, what: str) -> None:
    if len(data) < size:
        raise ValueError(f"{what} needs {size} bytes, got {len(data)}")


@dataclass
class IPv4Header:
    """Fixed part of an IPv4 header; frag_off holds flags and offset as on the wire."""

    version: int = 4
    ihl: int = 5
    tos: int = 0
    tot_len: int = 0
    id: int = 0
    frag_off: int = 0
    ttl: int = 64
    protocol: int = 0
    check: int = 0
    saddr: IPv4Address = field(default=IPv4Address(0))
    daddr: IPv4Address = field(default=IPv4Address(0))

    @property
    def header_len(self) -> int:
        return self.ihl * 4

    def pack(self) -> bytes:
        return _IPV4.pack(
            (self.version << 4) | (self.ihl & 0x0F),
            self.tos,
            self.tot_len,
            self.id,
            self.frag_off,
            self.ttl,
            self.protocol,
            self.check,
            self.saddr.packed,
            self.daddr.packed,
        )

    @classmethod
    def unpack(cls, data) -> "IPv4Header":
        _check_length(data, IPV4_HEADER_LEN, "IPv4 header")
        vihl, tos, tot_len, ident, frag_off, ttl, proto, check, src, dst = _IPV4.unpack_from(data)
        return cls(
            version=vihl >> 4,
            ihl=vihl & 0x0F,
            tos=tos,
            tot_len=tot_len,
            id=ident,
            frag_off=frag_off,
            ttl=ttl,
            protocol=proto,
            check=check,
            saddr=IPv4Address(src),
            daddr=IPv4Address(dst),
        )


@dataclass
class IPv6Header:
    """Fixed IPv6 header."""

    version: int = 6
    traffic_class: int = 0
    flow_label: int = 0
    payload_len: int = 0
    next_header: int = 0
    hop_limit: int = 64
    src: IPv6Address = field(default=IPv6Address(0))
    dst: IPv6Address = field(default=IPv6Address(0))

    def pack(self) -> bytes:
        vfc = (self.version << 28) | ((self.traffic_class & 0xFF) << 20) | (self.flow_label & 0xFFFFF)
        return _IPV6.pack(
            vfc,
            self.payload_len,
            self.next_header,
            self.hop_limit,
            self.src.packed,
            self.dst.packed,
        )

    @classmethod
    def unpack(cls, data) -> "IPv6Header":
        _check_length(data, IPV6_HEADER_LEN, "IPv6 header")
        vfc, plen, nxt, hops, src, dst = _IPV6.unpack_from(data)
        return cls(
            version=vfc >> 28,
            traffic_class=(vfc >> 20) & 0xFF,
            flow_label=vfc & 0xFFFFF,
            payload_len=plen,
            next_header=nxt,
            hop_limit=hops,
            src=IPv6Address(src),
            dst=IPv6Address(dst),
        )


@dataclass
class FragmentHeader:
    """IPv6 fragment extension header; offlg holds offset and flags as on the wire."""

    next_header: int = 0
    reserved: int = 0
    offlg: int = 0
    ident: int = 0

    @property
    def offset(self) -> int:
        """Fragment offset in bytes."""
        return self.offlg & IP6F_OFF_MASK

    @property
    def more_fragments(self) -> bool:
        return bool(self.offlg & IP6F_MORE_FRAG)

    def pack(self) -> bytes:
        return _FRAG.pack(self.next_header, self.reserved, self.offlg, self.ident)

    @classmethod
    def unpack(cls, data) -> "FragmentHeader":
        _check_length(data, FRAG_HEADER_LEN, "fragment header")
        nxt, reserved, offlg, ident = _FRAG.unpack_from(data)
        return cls(next_header=nxt, reserved=reserved, offlg=offlg, ident=ident)