"""
Network interface helpers.
"""

import socket
import logging
import ipaddress
from typing import List

import psutil


logger = logging.getLogger(__name__)


def get_external_ipv4_addresses() -> List[str]:
    """
    List IPv4 addresses of all non-internal network interfaces.

    Returns:
        Addresses in interface enumeration order
    """
    addresses: List[str] = []
    for ifname, iface_addrs in psutil.net_if_addrs().items():
        for addr in iface_addrs:
            if addr.family != socket.AF_INET:
                continue
            if ipaddress.ip_address(addr.address).is_loopback:
                logger.debug(f"Skipping internal interface {ifname}")
                continue
            addresses.append(addr.address)
    return addresses
