"""IPv4 address selection within a subnet."""

from __future__ import annotations

import ipaddress
import random
from collections.abc import Iterable
from typing import Union

_Address = Union[str, int, ipaddress.IPv4Address, ipaddress.IPv6Address]


def find_free_ip(
    subnet: str | ipaddress.IPv4Network,
    leases: Iterable[_Address] | None = None,
    start: _Address | None = None,
    end: _Address | None = None,
) -> ipaddress.IPv4Address:
    """Pick a random free IPv4 address in ``subnet``.

    Addresses in ``leases`` as well as the network and broadcast addresses are
    never chosen. The result lies between ``start`` and ``end``, which default
    to the first and last usable address of the subnet. Raises ValueError if
    no address is available.
    """
    network = ipaddress.ip_network(subnet, strict=False)
    if network.version != 4:
        raise ValueError(f"not an IPv4 subnet: {network}")

    net_int = int(network.network_address)
    bcast_int = int(network.broadcast_address)

    reserved = {net_int, bcast_int}
    for lease in leases or ():
        addr = ipaddress.ip_address(lease)
        if addr.version == 4:
            reserved.add(int(addr))

    lo = int(ipaddress.IPv4Address(start)) if start is not None else net_int + 1
    hi = int(ipaddress.IPv4Address(end)) if end is not None else bcast_int - 1
    lo = max(lo, net_int)
    hi = min(hi, bcast_int)

    if lo > hi:
        raise ValueError(f"no addresses in range within {network}")

    taken = sum(1 for ip in reserved if lo <= ip <= hi)
    if taken >= hi - lo + 1:
        raise ValueError(f"no free address left in {network}")

    while True:
        trial = random.randint(lo, hi)
        if trial not in reserved:
            return ipaddress.IPv4Address(trial)