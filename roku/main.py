"""Daemon entry point: interface setup, packet loop and teardown."""

import logging
import os
import select
import signal
import sys
from dataclasses import dataclass
from ipaddress import IPv4Address

from .args import ArgsError, parse_args, usage
from .clat import ClatParams, packet_4to6, packet_6to4
from .headers import MTU_DIFF
from .log import init_logging
from .net import (
    NetError,
    Route,
    add_route,
    del_route,
    make_route,
    set_dest_ip,
    set_ip,
    set_ip6,
    set_ipv6_forwarding,
    set_mtu,
)
from .sigfd import SignalWatcher
from .tun import open_tun, tun_up

logger = logging.getLogger(__name__)

PACKET_BUFSIZE = 65535
ROUTE_METRIC = 2000
_HOST_NETMASK = IPv4Address("255.255.255.255")
_USAGE_ERROR = 255


@dataclass
class _Interface:
    fd: int
    name: str
    route: Route | None = None
    ipv6_forwarding: int = 0


def dispatch(params: ClatParams, packet) -> list:
    """Translate one packet read from the TUN device and return the packets to write."""
    if not packet:
        logger.warning("Ignoring empty packet")
        return []
    version = packet[0] >> 4
    if version == 4:
        return packet_4to6(params, packet)
    if version == 6:
        return packet_6to4(params, packet)
    logger.warning("Ignoring packet with invalid IP version %d", version)
    return []


def _setup(args) -> _Interface:
    fd, name = open_tun(args.tun_name)
    iface = _Interface(fd=fd, name=name)
    clat = args.clat
    try:
        set_ip(name, clat.if_ip, _HOST_NETMASK)
        set_ip6(name, clat.if_gw6, 96)
        set_dest_ip(name, clat.if_gw)
        set_mtu(name, clat.if_mtu)
        tun_up(name)

        if args.add_route:
            route = make_route(name, clat.if_gw, ROUTE_METRIC, clat.if_mtu - MTU_DIFF)
            add_route(route)
            iface.route = route
            logger.info("Added IPv4 default route")
        else:
            logger.warning("Not adding IPv4 default route, you'll have to manually add one.")

        if args.add_fw_rules:
            logger.warning("Firewall rules are not managed here; "
                           "add NAT and forward rules for %s manually.", name)
        else:
            logger.warning("Not adding firewall rules, you'll have to manually add them.")

        if args.enable_ip_fwd:
            previous = set_ipv6_forwarding(1)
            if previous != 1:
                iface.ipv6_forwarding = previous
                logger.info("Enabled IPv6 forwarding")
            else:
                args.enable_ip_fwd = False
        else:
            logger.warning("Not enabling IPv6 forwarding, you'll have to manually enable it")
    except BaseException:
        if iface.route is not None:
            try:
                del_route(iface.route)
            except NetError:
                pass
        os.close(fd)
        raise
    return iface


def _teardown(args, iface: _Interface) -> bool:
    ok = True
    if iface.route is not None:
        try:
            del_route(iface.route)
        except NetError as exc:
            logger.warning("Failed to remove IPv4 route: %s", exc)
            ok = False
    if args.enable_ip_fwd:
        try:
            set_ipv6_forwarding(iface.ipv6_forwarding)
        except NetError as exc:
            logger.warning("Failed to restore IPv6 forwarding state: %s", exc)
            ok = False
    try:
        os.close(iface.fd)
    except OSError as exc:
        logger.warning("Failed to close TUN file descriptor (%s)", exc.strerror)
        ok = False
    return ok


def _loop(params: ClatParams, signals: SignalWatcher) -> int:
    fd = params.tunfd
    while True:
        ready, _, _ = select.select([signals, fd], [], [])
        if signals in ready:
            logger.info("Received signal %d, stopping...", signals.read())
            return 0
        if fd not in ready:
            continue
        try:
            packet = os.read(fd, PACKET_BUFSIZE)
        except OSError as exc:
            logger.error("Failed read packet from TUN interface (%s)", exc.strerror)
            return 1
        try:
            for out in dispatch(params, packet):
                os.write(fd, out)
        except ValueError as exc:
            logger.error("Catastrophic failure during translation: %s", exc)
            return 1
        except OSError as exc:
            logger.error("Failed to write packet to TUN interface (%s)", exc.strerror)
            return 1


def run(args) -> int:
    """Set up the interface, translate packets until signalled, then clean up."""
    try:
        watcher = SignalWatcher(signal.SIGTERM, signal.SIGINT)
    except (OSError, ValueError) as exc:
        logger.error("Failed to watch signals: %s", exc)
        return 1

    with watcher:
        try:
            iface = _setup(args)
        except (NetError, OSError) as exc:
            logger.error("Failed to set up TUN interface: %s", exc)
            return 1

        args.clat.tunfd = iface.fd
        logger.info('Roku started on interface "%s" - NAT64 prefix: %s/96',
                    iface.name, args.clat.dst_prefix)
        try:
            ret = _loop(args.clat, watcher)
        finally:
            ok = _teardown(args, iface)
        return ret if ok else 1


def main(argv=None) -> int:
    """Parse the command line and run the translator."""
    progname = os.path.basename(sys.argv[0]) if sys.argv and sys.argv[0] else "roku"
    if argv is None:
        argv = sys.argv[1:]
    try:
        args = parse_args(argv)
    except ArgsError as exc:
        sys.stderr.write(f"{progname}: {exc}\n{usage(progname)}")
        return _USAGE_ERROR
    if args is None:
        sys.stdout.write(usage(progname))
        return 0

    init_logging(args.log_level)
    return run(args)


if __name__ == "__main__":
    sys.exit(main())