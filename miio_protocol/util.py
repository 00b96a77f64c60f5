#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Simple utility functions used by this package
"""

from __future__ import annotations

from ipaddress import IPv4Address

import netifaces

from .internal_types import *

def full_name_of_type(t: Type) -> str:
    """Returns the fully qualified name of a type, e.g., 'miio_protocol.session.Session'"""
    module = t.__module__
    if module == 'builtins':
        return t.__qualname__
    return f"{module}.{t.__qualname__}"

def full_type(o: Any) -> str:
    """Returns the fully qualified name of the type of an object"""
    return full_name_of_type(type(o))

def get_broadcast_addresses_and_interfaces(include_loopback: bool=False) -> List[Tuple[str, str]]:
    """Returns a list of Tuple[broadcast_address: str, interface_name: str] for every IPv4
       address on the local host that reports a broadcast address.

       Interfaces are returned in the order netifaces enumerates them, and each interface's
       addresses in the order they are assigned. An interface that has no IPv4 address is
       considered down and is skipped. Loopback addresses are skipped unless include_loopback
       is True. Duplicate broadcast addresses are only reported once.
    """
    result: List[Tuple[str, str]] = []
    seen: Set[str] = set()
    for ifname in netifaces.interfaces():
        ifinfo = netifaces.ifaddresses(ifname)
        for addrinfo in ifinfo.get(netifaces.AF_INET, []):
            ip_str = addrinfo.get('addr')
            broadcast = addrinfo.get('broadcast')
            if ip_str is None or broadcast is None:
                continue
            if not include_loopback and IPv4Address(ip_str).is_loopback:
                continue
            if broadcast in seen:
                continue
            seen.add(broadcast)
            result.append((broadcast, ifname))
    return result

def get_broadcast_addresses(include_loopback: bool=False) -> List[str]:
    """Returns a List[broadcast_address: str] for the active non-loopback IPv4 interfaces of the
       local host, in enumeration order."""
    return [ broadcast for broadcast, _ in get_broadcast_addresses_and_interfaces(include_loopback=include_loopback)]
