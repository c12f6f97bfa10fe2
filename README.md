# roku

roku is a user-space CLAT: the customer-side translator of 464XLAT. It creates
a TUN interface, gives it an IPv4 address, an IPv6 address and (optionally) a
default IPv4 route, then translates every IPv4 packet routed into it to IPv6
using a /96 NAT64 prefix, and translates IPv6 packets back to IPv4.

Translation is stateless:

- TCP and UDP checksums are updated for the new addresses. UDP packets without
  a checksum are dropped.
- ICMP echo requests and replies are translated in both directions, and so are
  ICMP errors (destination unreachable, packet too big / fragmentation needed,
  time exceeded, and the "next header" parameter problem), including the
  packet quoted inside them.
- Large IPv4 packets without the DF flag, and IPv4 fragments, are sent as IPv6
  fragments; IPv6 fragments are turned back into IPv4 fragments. Fragmented
  ICMP is not translated.
- Packets with an expired TTL or hop limit, packets too large for the
  interface, packets to private or reserved IPv4 destinations and IPv6 packets
  outside both prefixes are answered with the matching ICMP or ICMPv6 error,
  or dropped.

It runs on Linux only and needs root (or `CAP_NET_ADMIN`) to create the TUN
device, assign addresses, add the route and change IPv6 forwarding.

## Installation

```
pip install .
```

## Usage

```
roku [OPTION...]
```

| Option | Meaning | Default |
| --- | --- | --- |
| `-I <Interface>` | interface name | `roku` |
| `-i <IP>` | interface IPv4 address | `192.0.0.2` |
| `-g <IP>` | interface gateway IPv4 address | `192.0.0.1` |
| `-s <IPv6 prefix>` | CLAT IPv6 source prefix | `fd64::/96` |
| `-d <IPv6 prefix>` | CLAT IPv6 destination (NAT64) prefix | `64:ff9b::/96` |
| `-m <MTU>` | interface MTU (1280 to 65535) | `1500` |
| `-R` | do not add the default IPv4 route | |
| `-F` | do not warn about firewall rules (see below) | |
| `-W` | do not enable IPv6 forwarding | |
| `-v` | verbose (debug) logging | |
| `-h` | show the help message | |

Prefixes are /96: the last 32 bits of a prefix must be zero. The IPv6 address
of the interface is the gateway IPv4 address placed in the source prefix.

For example, to translate towards a NAT64 gateway that uses a custom prefix:

```
sudo roku -d 2001:db8:64::
```

`-h` prints the help text and exits with status 0; an invalid option or value
prints an error and the help text to standard error and exits with status 255.

The default route is added with metric 2000 and an MTU 20 bytes below the
interface MTU. IPv6 forwarding is switched on through
`/proc/sys/net/ipv6/conf/all/forwarding` if it was off.

roku stops on SIGINT or SIGTERM. On exit it removes the route it added,
restores the IPv6 forwarding state it changed and closes the TUN device.

Log lines go to standard error as `HH:MM:SS LEVEL file:line message`, coloured
when standard error is a terminal.

## What roku does not do

roku does not manage firewall rules. Masquerading of the source prefix and
accepting traffic forwarded from the TUN interface have to be set up by hand;
unless `-F` is given, roku logs a warning at start-up as a reminder.

## Library use

The translation code works without a TUN device, on `bytes`:

- `roku.clat.packet_4to6(params, packet)` and `roku.clat.packet_6to4(params,
  packet)` take a `ClatParams` and a packet and return the list of packets to
  write back (translated packets, an ICMP error, or an empty list).
- `roku.main.dispatch(params, packet)` picks one of them by IP version.
- `roku.trans` translates headers and transport checksums
  (`header_4to6`, `header_6to4`, `payload_4to6`, `payload_6to4`, raising
  `TranslationError` for packets that must be dropped).
- `roku.icmp` builds ICMP/ICMPv6 errors (`build_error`, `build_error6`) and
  translates ICMP messages (`translate_4to6`, `translate_6to4`).
- `roku.headers` has the `IPv4Header`, `IPv6Header` and `FragmentHeader`
  dataclasses with `pack()` and `unpack()`.
- `roku.checksum` has the Internet checksum helpers; `roku.addr` the prefix
  mapping and private-address checks.
- `roku.args.parse_args(argv)` parses the options above into an `Args`.

## Running the tests

```
pip install .[test]
pytest
```