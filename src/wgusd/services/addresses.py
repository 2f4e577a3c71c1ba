from __future__ import annotations

import ipaddress
import socket

from wgusd.models import Endpoint, SocketAddress


class AddressResolutionError(RuntimeError):
    pass


def resolve_udp_address(endpoint: Endpoint) -> SocketAddress:
    """
    Resolve an endpoint host (name or literal) to one concrete UDP address.

    IPv4 results win over IPv6 when the name has both.
    """
    try:
        infos = socket.getaddrinfo(endpoint.host, endpoint.port, type=socket.SOCK_DGRAM, proto=socket.IPPROTO_UDP)
    except (socket.gaierror, UnicodeError) as exc:
        raise AddressResolutionError(f"resolve UDP address {endpoint}: {exc}") from exc

    candidates: list[SocketAddress] = []
    for family, _type, _proto, _canon, sockaddr in infos:
        if family not in {socket.AF_INET, socket.AF_INET6}:
            continue
        # Link-local results keep their scope ("fe80::1%eth0"); wg needs it to route.
        candidates.append(SocketAddress(ip=ipaddress.ip_address(str(sockaddr[0])), port=int(sockaddr[1])))

    if not candidates:
        raise AddressResolutionError(f"resolve UDP address {endpoint}: no usable addresses")

    candidates.sort(key=lambda addr: addr.ip.version)
    return candidates[0]
