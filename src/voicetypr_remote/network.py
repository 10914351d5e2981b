"""Local network interface helpers."""

from __future__ import annotations

import ipaddress
import logging
import socket

import psutil

logger = logging.getLogger(__name__)

LOOPBACK_ADDRESS = "127.0.0.1"


def _ipv4_addresses() -> list[tuple[str, ipaddress.IPv4Address]]:
    found: list[tuple[str, ipaddress.IPv4Address]] = []
    for name, addrs in psutil.net_if_addrs().items():
        for addr in addrs:
            if addr.family != socket.AF_INET:
                continue
            try:
                found.append((name, ipaddress.IPv4Address(addr.address)))
            except ValueError:
                continue
    return found


def list_bind_addresses() -> list[str]:
    """Addresses the sharing server listens on.

    Loopback first, then every non-loopback IPv4 address of a local
    interface. IPv6 is not bound.
    """
    addresses = [LOOPBACK_ADDRESS]
    for _, ip in _ipv4_addresses():
        if ip.is_loopback:
            continue
        value = str(ip)
        if value not in addresses:
            addresses.append(value)
    logger.debug("Bind addresses: %s", addresses)
    return addresses


def list_local_ips() -> list[str]:
    """LAN addresses other machines can use, formatted as ``"ip (iface)"``."""
    ips = [
        f"{ip} ({name})"
        for name, ip in _ipv4_addresses()
        if not ip.is_loopback and not ip.is_link_local
    ]
    return ips or ["No network connection"]


def local_host_aliases() -> set[str]:
    """Names and addresses that point back at this machine."""
    aliases = {"localhost", LOOPBACK_ADDRESS, "::1", "0.0.0.0"}
    try:
        hostname = socket.gethostname()
    except OSError:
        hostname = ""
    if hostname:
        aliases.add(hostname.lower())
        aliases.add(f"{hostname.lower()}.local")
    aliases.update(str(ip) for _, ip in _ipv4_addresses())
    return aliases


def is_local_host(host: str) -> bool:
    host = host.strip().strip("[]").lower()
    try:
        if ipaddress.ip_address(host).is_loopback:
            return True
    except ValueError:
        pass
    return host in local_host_aliases()
