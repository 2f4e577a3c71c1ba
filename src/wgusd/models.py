from __future__ import annotations

import ipaddress
from dataclasses import dataclass

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address


def format_host_port(host: str, port: int) -> str:
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


@dataclass(frozen=True)
class ServiceRecord:
    priority: int
    weight: int
    target: str
    port: int


@dataclass(frozen=True)
class Endpoint:
    host: str
    port: int

    def __str__(self) -> str:
        return format_host_port(self.host, self.port)


@dataclass(frozen=True)
class SocketAddress:
    ip: IPAddress
    port: int

    def __str__(self) -> str:
        return format_host_port(str(self.ip), self.port)

    def matches(self, other: SocketAddress | None) -> bool:
        """
        True when both the IP bytes and the port are identical.

        An IPv4-mapped IPv6 address (::ffff:a.b.c.d) is the same address as a.b.c.d.
        """
        if other is None:
            return False
        return _unmap(self.ip) == _unmap(other.ip) and self.port == other.port


def _unmap(ip: IPAddress) -> IPAddress:
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        return ip.ipv4_mapped
    return ip


@dataclass(frozen=True)
class PeerState:
    public_key: str
    endpoint: SocketAddress | None = None
    allowed_ips: tuple[str, ...] = ()


@dataclass(frozen=True)
class InterfaceState:
    name: str
    public_key: str = ""
    listen_port: int = 0
    peers: tuple[PeerState, ...] = ()


@dataclass(frozen=True)
class PeerUpdate:
    # Targets an existing peer only: applying it must never add or remove peers.
    public_key: str
    endpoint: SocketAddress
    update_only: bool = True
