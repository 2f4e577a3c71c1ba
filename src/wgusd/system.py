from __future__ import annotations

import ipaddress
import logging
import shutil
import subprocess

from wgusd.models import InterfaceState, PeerState, PeerUpdate, SocketAddress

_log = logging.getLogger("wgusd.wg")

_NONE = "(none)"


class WireguardClientError(RuntimeError):
    pass


class WireguardUnavailableError(WireguardClientError):
    pass


class WireguardDeviceNotFoundError(WireguardClientError):
    pass


class WireguardCommandError(WireguardClientError):
    pass


def parse_dump_endpoint(value: str) -> SocketAddress | None:
    raw = value.strip()
    if not raw or raw == _NONE:
        return None
    host, sep, port = raw.rpartition(":")
    if not sep:
        raise ValueError(f"invalid endpoint in wg dump: {raw!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return SocketAddress(ip=ipaddress.ip_address(host), port=int(port))


def parse_dump(name: str, output: str) -> InterfaceState:
    """
    Parse `wg show <iface> dump`.

    First line is the interface:
      private_key, public_key, listen_port, fwmark
    Subsequent lines are peers:
      public_key, preshared_key, endpoint, allowed_ips, latest_handshake,
      transfer_rx, transfer_tx, persistent_keepalive
    """
    rows = [line.split("\t") for line in output.splitlines() if line.strip()]
    if not rows:
        raise WireguardCommandError(f"empty wg dump for {name}")

    head = rows[0]
    if len(head) < 3:
        raise WireguardCommandError(f"unexpected interface line in wg dump for {name}")
    public_key = "" if head[1] == _NONE else head[1]
    try:
        listen_port = int(head[2])
    except ValueError:
        listen_port = 0

    peers: list[PeerState] = []
    for row in rows[1:]:
        if len(row) < 4:
            raise WireguardCommandError(f"unexpected peer line in wg dump for {name}")
        try:
            endpoint = parse_dump_endpoint(row[2])
        except ValueError as exc:
            raise WireguardCommandError(str(exc)) from exc
        allowed = () if row[3] in {"", _NONE} else tuple(ip.strip() for ip in row[3].split(",") if ip.strip())
        peers.append(PeerState(public_key=row[0], endpoint=endpoint, allowed_ips=allowed))

    return InterfaceState(name=name, public_key=public_key, listen_port=listen_port, peers=tuple(peers))


class WireguardClient:
    """
    Handle on the WireGuard control plane, backed by the `wg(8)` binary.

    Use as a context manager; calls after close() fail.
    """

    def __init__(self, binary: str = "wg", *, log: logging.Logger | None = None) -> None:
        self.binary = binary
        self._log = log or _log
        self._closed = False

    @classmethod
    def open(cls, binary: str = "wg", *, log: logging.Logger | None = None) -> "WireguardClient":
        path = shutil.which(binary)
        if not path:
            raise WireguardUnavailableError(f"{binary} binary not found")
        client = cls(path, log=log)
        try:
            proc = client._run("show", "interfaces")
        except WireguardCommandError as exc:
            raise WireguardUnavailableError(str(exc)) from exc
        if proc.returncode != 0:
            raise WireguardUnavailableError(proc.stderr.strip() or "wg show interfaces failed")
        return client

    def __enter__(self) -> "WireguardClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        self._closed = True

    def _run(self, *args: str) -> subprocess.CompletedProcess:
        if self._closed:
            raise WireguardClientError("wireguard client is closed")
        cmd = [self.binary, *args]
        self._log.debug("wg_exec cmd=%s", " ".join(cmd))
        try:
            return subprocess.run(cmd, capture_output=True, text=True)
        except OSError as exc:
            raise WireguardCommandError(f"cannot run {self.binary}: {exc}") from exc

    def device(self, name: str) -> InterfaceState:
        proc = self._run("show", name, "dump")
        if proc.returncode != 0:
            details = proc.stderr.strip() or "wg show dump failed"
            if "no such device" in details.lower():
                raise WireguardDeviceNotFoundError(f"wireguard device {name} not found")
            raise WireguardCommandError(f"get wireguard device {name}: {details}")
        return parse_dump(name, proc.stdout)

    def apply(self, interface: str, update: PeerUpdate) -> None:
        if not update.update_only:
            raise WireguardCommandError("only update-only peer changes are supported")

        # `wg set ... peer <key>` creates the peer when it is missing.
        device = self.device(interface)
        if not any(peer.public_key == update.public_key for peer in device.peers):
            raise WireguardCommandError(f"peer {update.public_key} is not configured on {interface}")

        proc = self._run("set", interface, "peer", update.public_key, "endpoint", str(update.endpoint))
        if proc.returncode != 0:
            raise WireguardCommandError(proc.stderr.strip() or f"wg set {interface} failed")
