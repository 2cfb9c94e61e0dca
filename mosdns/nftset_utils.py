"""Address arithmetic used when adding CIDR ranges to interval sets."""

from __future__ import annotations

import ipaddress

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address
IPNetwork = ipaddress.IPv4Network | ipaddress.IPv6Network


def broadcast_addr(network: IPNetwork | str) -> IPAddress:
    """Return the last address of network (its address with all host bits set)."""
    if isinstance(network, str):
        network = ipaddress.ip_network(network, strict=False)
    addr = network.network_address.packed
    mask = network.netmask.packed
    out = bytes(a | (~m & 0xFF) for a, m in zip(addr, mask))
    return ipaddress.ip_address(out)


def next_ip(ip: IPAddress | str) -> IPAddress:
    """Return the address after ip, wrapping around to all zeros."""
    if isinstance(ip, str):
        ip = ipaddress.ip_address(ip)
    bits = ip.max_prefixlen
    value = (int(ip) + 1) % (1 << bits)
    return ipaddress.ip_address(value.to_bytes(bits // 8, "big"))