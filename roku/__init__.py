"""User-space CLAT translating IPv4 to IPv6 and back over a Linux TUN interface."""

__version__ = "0.1.0"