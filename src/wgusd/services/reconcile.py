from __future__ import annotations

import logging
from typing import Callable

from wgusd.enums import Outcome, ReconcileFailure
from wgusd.models import Endpoint, PeerUpdate, SocketAddress
from wgusd.services.addresses import AddressResolutionError, resolve_udp_address
from wgusd.system import WireguardClient, WireguardClientError, WireguardDeviceNotFoundError

_log = logging.getLogger("wgusd.reconcile")


class ReconcileError(RuntimeError):
    def __init__(self, reason: ReconcileFailure, message: str, *, peer_count: int | None = None) -> None:
        super().__init__(message)
        self.reason = reason
        self.peer_count = peer_count


def reconcile(
    interface: str,
    target: Endpoint,
    *,
    client_factory: Callable[[], WireguardClient] = WireguardClient.open,
    resolve_address: Callable[[Endpoint], SocketAddress] = resolve_udp_address,
    log: logging.Logger | None = None,
) -> Outcome:
    """
    Point the single peer of `interface` at `target` if it is not there already.

    Never adds or removes peers: an interface with zero or several peers is
    rejected rather than guessed at.
    """
    log = log or _log
    try:
        client = client_factory()
    except WireguardClientError as exc:
        raise ReconcileError(ReconcileFailure.CLIENT_UNAVAILABLE, f"create wireguard client: {exc}") from exc

    with client:
        try:
            device = client.device(interface)
        except WireguardDeviceNotFoundError as exc:
            raise ReconcileError(ReconcileFailure.DEVICE_NOT_FOUND, str(exc)) from exc
        except WireguardClientError as exc:
            raise ReconcileError(ReconcileFailure.DEVICE_NOT_FOUND, f"get wireguard device {interface}: {exc}") from exc

        if len(device.peers) != 1:
            raise ReconcileError(
                ReconcileFailure.UNEXPECTED_PEER_COUNT,
                f"cannot reconfigure device {interface} with {len(device.peers)} configured peers",
                peer_count=len(device.peers),
            )

        peer = device.peers[0]
        log.debug("reconcile_peer interface=%s public_key=%s", interface, peer.public_key)

        try:
            address = resolve_address(target)
        except AddressResolutionError as exc:
            raise ReconcileError(ReconcileFailure.ADDRESS_RESOLUTION_FAILED, str(exc)) from exc
        log.debug("reconcile_resolved endpoint=%s address=%s", target, address)

        if address.matches(peer.endpoint):
            log.debug("reconcile_no_change interface=%s endpoint=%s", interface, address)
            return Outcome.NO_CHANGE

        update = PeerUpdate(public_key=peer.public_key, endpoint=address)
        try:
            client.apply(interface, update)
        except WireguardClientError as exc:
            raise ReconcileError(ReconcileFailure.APPLY_FAILED, f"reconfigure peer: {exc}") from exc

        log.info(
            "reconcile_updated interface=%s previous=%s endpoint=%s",
            interface,
            peer.endpoint or "(none)",
            address,
        )
        return Outcome.UPDATED
