"""Remote address helpers."""
from __future__ import annotations

import ipaddress
from typing import Iterable, Optional


def ip_allowed(remote_ip: Optional[str], allowlist: Iterable[str]) -> bool:
    """
    True when `remote_ip` matches an entry of `allowlist` (plain IPs or CIDRs).
    Malformed entries are skipped; an unparsable remote address is refused.
    """
    if not remote_ip:
        return False
    try:
        rip = ipaddress.ip_address(remote_ip)
    except ValueError:
        return False
    for entry in allowlist:
        try:
            if "/" in entry:
                if rip in ipaddress.ip_network(entry, strict=False):
                    return True
            elif rip == ipaddress.ip_address(entry):
                return True
        except ValueError:
            continue
    return False
