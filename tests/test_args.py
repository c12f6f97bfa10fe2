from ipaddress import IPv4Address, IPv6Address

import pytest

from roku.addr import map_4to6
from roku.args import ArgsError, parse_args, parse_int, usage
from roku.log import LogLevel


def test_defaults():
    args = parse_args([])
    assert args.tun_name == "roku"
    assert args.clat.if_mtu == 1500
    assert args.clat.if_ip == IPv4Address("192.0.0.2")
    assert args.clat.if_gw == IPv4Address("192.0.0.1")
    assert args.clat.src_prefix == IPv6Address("fd64::")
    assert args.clat.dst_prefix == IPv6Address("64:ff9b::")
    assert args.log_level == LogLevel.INFO
    assert args.add_route and args.add_fw_rules and args.enable_ip_fwd


def test_default_ipv6_gateway():
    args = parse_args([])
    assert args.clat.if_gw6 == IPv6Address("fd64::c000:1")


def test_all_options():
    args = parse_args([
        "-I", "clat0", "-i", "10.1.1.2", "-g", "10.1.1.1",
        "-s", "fd00:1::", "-d", "64:ff9b:1::", "-m", "1400",
        "-R", "-F", "-W", "-v",
    ])
    assert args.tun_name == "clat0"
    assert args.clat.if_ip == IPv4Address("10.1.1.2")
    assert args.clat.if_gw == IPv4Address("10.1.1.1")
    assert args.clat.src_prefix == IPv6Address("fd00:1::")
    assert args.clat.dst_prefix == IPv6Address("64:ff9b:1::")
    assert args.clat.if_mtu == 1400
    assert not args.add_route
    assert not args.add_fw_rules
    assert not args.enable_ip_fwd
    assert args.log_level == LogLevel.DEBUG


def test_ipv6_gateway_follows_options():
    args = parse_args(["-s", "fd00:1::", "-g", "10.1.1.1"])
    assert args.clat.if_gw6 == map_4to6(IPv4Address("10.1.1.1"), IPv6Address("fd00:1::"))


def test_options_after_positional_arguments():
    args = parse_args(["extra", "-v"])
    assert args.log_level == LogLevel.DEBUG


def test_attached_option_value():
    assert parse_args(["-m1400"]).clat.if_mtu == 1400


def test_help_returns_none():
    assert parse_args(["-h"]) is None


@pytest.mark.parametrize("argv", [
    ["-i", "bad"],
    ["-g", "300.1.1.1"],
    ["-s", "nope"],
    ["-s", "fd64::1"],
    ["-d", "64:ff9b::1"],
    ["-s", "fe80::%eth0"],
    ["-m", "abc"],
    ["-m", "1279"],
    ["-m", "65536"],
    ["-x"],
    ["-I"],
])
def test_invalid_arguments(argv):
    with pytest.raises(ArgsError):
        parse_args(argv)


def test_invalid_address_message():
    with pytest.raises(ArgsError, match='invalid IPv4 address "bad"'):
        parse_args(["-i", "bad"])


def test_invalid_prefix_message():
    with pytest.raises(ArgsError, match='invalid IPv6 destination prefix "64:ff9b::1"'):
        parse_args(["-d", "64:ff9b::1"])


def test_mtu_range_message():
    with pytest.raises(ArgsError, match="MTU must be between 1280 and 65535"):
        parse_args(["-m", "70000"])


def test_mtu_bounds_accepted():
    assert parse_args(["-m", "1280"]).clat.if_mtu == 1280
    assert parse_args(["-m", "65535"]).clat.if_mtu == 65535


@pytest.mark.parametrize("text, expected", [
    ("42", 42),
    ("-7", -7),
    ("+3", 3),
    (" 15", 15),
    ("2147483647", 2147483647),
    ("-2147483648", -2147483648),
    ("", 0),
])
def test_parse_int(text, expected):
    assert parse_int(text) == expected


@pytest.mark.parametrize("text", ["12 ", "abc", "1.5", "-", "2147483648", "-2147483649"])
def test_parse_int_rejects(text):
    with pytest.raises(ValueError):
        parse_int(text)


def test_usage_text():
    text = usage("prog")
    assert text.startswith("Usage: prog [OPTION...]\n")
    assert "interface name (default: roku)" in text
    assert "(default: 192.0.0.2)" in text
    assert "(default: 192.0.0.1)" in text
    assert "(default: fd64::/96)" in text
    assert "(default: 64:ff9b::/96)" in text
    assert "interface MTU (default: 1500)" in text
    assert text.endswith("show this help message\n")